"""
Example: Carapace Size of Archaeological Crabs from Dactyls
============================================================

This script demonstrates the estimation chain on its own, without the
isotope analyses:

Scientific Question:
    How large were the crabs in the archaeological assemblage, given that
    most remains are isolated (and often broken) dactyls?

This analysis:
1. Fits CA_H ~ RUD_V on the modern collection and selects linear vs quadratic
2. Reports leverage and Cook's distance for the modern specimens
3. Fits the RUD_V ~ RUD_H imputer and fills missing RUD_V
4. Estimates carapace height with prediction intervals for every specimen
5. Compares the estimates with the configured reference equation

Requirements:
    - modern_specimens.csv and archaeological_specimens.csv in DATA_DIR
      (or CRAB_DATA_DIR)
"""

import os
import sys

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crab_analysis import (
    # Data loading
    load_all,

    # Estimation chain
    fit_carapace_estimator,
    regression_diagnostics,
    fit_dactyl_imputer,
    estimate_carapace_size,
    compare_with_reference,

    # Configuration
    COLS,
    ESTIMATE_COLS,
    ensure_output_dir
)
from crab_analysis.visualization import plot_regression_fit, plot_imputation


def main():
    """
    Run the carapace estimation chain and save the estimate table.
    """

    print("=" * 80)
    print("CARAPACE SIZE FROM DACTYL MEASUREMENTS")
    print("=" * 80)

    output_dir = ensure_output_dir()
    print(f"Output directory: {output_dir}")

    # ========================================================================
    # STEP 1: Load tables
    # ========================================================================
    tables = load_all()
    modern = tables['modern']
    archaeological = tables['archaeological']

    # ========================================================================
    # STEP 2: Carapace estimator
    # ========================================================================
    selection = fit_carapace_estimator(modern)
    estimator = selection.selected
    diagnostics = regression_diagnostics(estimator, id_column=modern[COLS['specimen_id']],
                                         verbose=True)

    fig, _ = plot_regression_fit(estimator, diagnostics=diagnostics,
                                 save_path=os.path.join(output_dir, 'example_estimator.png'))
    plt.close(fig)

    # ========================================================================
    # STEP 3: Imputation and composed estimates
    # ========================================================================
    imputer = fit_dactyl_imputer(modern)
    estimate = estimate_carapace_size(archaeological, estimator, imputer)

    fig, _ = plot_imputation(estimate.imputation, modern=modern,
                             save_path=os.path.join(output_dir, 'example_imputation.png'))
    plt.close(fig)

    # ========================================================================
    # STEP 4: Reference comparison
    # ========================================================================
    comparison = compare_with_reference(estimate.specimens, estimator)

    # ========================================================================
    # STEP 5: Save estimate table
    # ========================================================================
    columns = [COLS['specimen_id'], COLS['rud_v'], COLS['rud_h']] + list(ESTIMATE_COLS.values())
    out_path = os.path.join(output_dir, 'carapace_estimates.csv')
    estimate.specimens[columns].to_csv(out_path, index=False)
    print(f"\nEstimates saved: {out_path}")

    return {
        'selection': selection,
        'estimate': estimate,
        'reference_comparison': comparison,
    }


if __name__ == "__main__":
    results = main()
