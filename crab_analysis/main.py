"""
Crab Dactyl Analysis - Main Orchestration Script
=================================================

This script provides the main entry point for running the analysis. It can
be run directly or individual functions can be called interactively.

Usage:
    # Run full analysis
    python -m crab_analysis.main --full

    # Or import and run specific analyses:
    from crab_analysis.main import *
    tables = load_data()
    estimator = analyze_carapace_estimator(tables['modern'])

Pipeline (strict order, each stage returns new records):
    1: Treatment-effect check on split samples
    2: Carapace-size estimator, CA_H ~ RUD_V on modern specimens
    3: Missing-dactyl imputer, RUD_V ~ RUD_H, composed carapace estimates
    4: Isotope correlations and comparisons
"""

import time
from contextlib import contextmanager
from datetime import timedelta

import matplotlib
import matplotlib.pyplot as plt

from .config import (
    COLS, CONFIDENCE_LEVEL, ISOTOPE_COLS, MORPHOMETRIC_COLS, ensure_output_dir,
    print_config_summary
)
from .data_loading import load_all, summarize_dataset, quick_data_check
from .descriptive import summarize_part_counts, describe_measurements
from .exceptions import MissingDataError
from .imputation import (
    fit_dactyl_imputer, estimate_carapace_size, compare_with_reference,
    get_reference_equation
)
from .isotope_analysis import (
    size_isotope_correlations, size_isotope_matrix, water_carapace_by_pool_group,
    compare_assemblages, compare_groups, default_size_filter
)
from .regression import fit_carapace_estimator, regression_diagnostics
from .spatial import pool_group_extents
from .treatment import compute_treatment_effect
from .visualization import (
    setup_plot_style, get_figure_path, plot_regression_fit, plot_model_selection,
    plot_imputation, plot_size_isotope, plot_correlation_matrix, plot_pool_groups,
    plot_site_map
)


# ============================================================================
# RUNTIME TRACKING AND PROGRESS UTILITIES
# ============================================================================

class AnalysisTimer:
    """
    Track runtime for analysis steps with formatted output.

    Usage:
        timer = AnalysisTimer()
        timer.start("Loading data")
        # ... do work ...
        timer.stop()
        timer.summary()
    """

    def __init__(self):
        self.steps = []
        self.current_step = None
        self.start_time = None
        self.overall_start = None

    def start(self, step_name):
        """Start timing a new step."""
        if self.overall_start is None:
            self.overall_start = time.time()

        self.current_step = step_name
        self.start_time = time.time()

    def stop(self):
        """Stop timing current step and record."""
        if self.start_time is None:
            return

        elapsed = time.time() - self.start_time
        self.steps.append({
            'step': self.current_step,
            'duration': elapsed,
        })
        self.start_time = None
        self.current_step = None
        return elapsed

    def elapsed_str(self, seconds):
        """Format seconds as human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            return f"{seconds/60:.1f}min"
        else:
            return str(timedelta(seconds=int(seconds)))

    def summary(self):
        """Print summary of all step timings."""
        if not self.steps:
            print("\nNo timing data recorded.")
            return

        total = sum(s['duration'] for s in self.steps)
        overall = time.time() - self.overall_start if self.overall_start else total

        print("\n" + "=" * 60)
        print("RUNTIME SUMMARY")
        print("=" * 60)
        print(f"{'Step':<40} {'Duration':>15}")
        print("-" * 60)

        for step in self.steps:
            duration_str = self.elapsed_str(step['duration'])
            pct = (step['duration'] / total) * 100 if total > 0 else 0
            print(f"{step['step']:<40} {duration_str:>10} ({pct:>4.1f}%)")

        print("-" * 60)
        print(f"{'Total (all steps)':<40} {self.elapsed_str(total):>15}")
        print(f"{'Overall runtime':<40} {self.elapsed_str(overall):>15}")
        print("=" * 60)

        return {
            'steps': self.steps.copy(),
            'total': total,
            'overall': overall,
        }


@contextmanager
def timed_step(timer, step_name):
    """Context manager for timing analysis steps."""
    timer.start(step_name)
    try:
        yield
    finally:
        elapsed = timer.stop()
        if elapsed:
            print(f"  [DONE] {step_name} completed in {timer.elapsed_str(elapsed)}")


def print_step_header(step_num, total_steps, title):
    """Print a formatted step header with progress."""
    bar_width = 30
    pct = step_num / total_steps
    filled = int(bar_width * pct)
    bar = "█" * filled + "░" * (bar_width - filled)

    print(f"\n[{bar}] Step {step_num}/{total_steps}")
    print("-" * 60)
    print(f"  {title}")
    print("-" * 60)


def _save(fig, filename, save_figures):
    if save_figures:
        fig.savefig(get_figure_path(filename), dpi=300, bbox_inches='tight')
        print(f"  Figure saved: {get_figure_path(filename, create_dir=False)}")
    plt.close(fig)


# ============================================================================
# DATA LOADING
# ============================================================================

def load_data(data_dir=None):
    """
    Load all input tables.

    Parameters
    ----------
    data_dir : str, optional
        Folder with the CSV tables (default: DATA_DIR from config)

    Returns
    -------
    dict
        table name -> DataFrame (None for absent optional tables)
    """
    print("\n" + "=" * 60)
    print("LOADING DATA")
    print("=" * 60)

    try:
        tables = load_all(data_dir)
    except FileNotFoundError as e:
        print(f"\n[ERROR] File not found: {e}")
        print("  Please check DATA_DIR in config.py or set CRAB_DATA_DIR")
        raise

    for name, df in tables.items():
        if df is not None and name in ('archaeological', 'modern', 'water_samples'):
            summarize_dataset(df, name)

    print(f"\n[SUCCESS] Loaded {sum(df is not None for df in tables.values())} tables")
    return tables


# ============================================================================
# STAGE 1: TREATMENT EFFECT
# ============================================================================

def run_treatment_check(treatment_table):
    """Treated - untreated isotope offsets of the split samples."""
    if treatment_table is None:
        print("  No treatment table; skipping treatment-effect check")
        return None
    return compute_treatment_effect(treatment_table)


# ============================================================================
# DESCRIPTIVE STATISTICS
# ============================================================================

def analyze_descriptive(tables, save_figures=True):
    """Part counts, measurement summaries, pool group extents, site map."""
    results = {}
    if tables.get('part_counts') is not None:
        results['part_counts'] = summarize_part_counts(tables['part_counts'])

    columns = MORPHOMETRIC_COLS + ISOTOPE_COLS
    modern = tables['modern']
    arch = tables['archaeological']
    results['modern_measurements'] = describe_measurements(
        modern, [c for c in columns if c in modern.columns],
        by=COLS['wadi'] if COLS['wadi'] in modern.columns else None
    )
    results['archaeological_measurements'] = describe_measurements(
        arch, [c for c in columns if c in arch.columns]
    )

    water = tables.get('water_samples')
    if water is not None and {COLS['pool_group'], COLS['lat'], COLS['lon']} <= set(water.columns):
        results['pool_group_extents'] = pool_group_extents(water)

    sites = tables.get('site_locations')
    if sites is not None:
        fig, _ = plot_site_map(sites, water=water)
        _save(fig, 'site_map.png', save_figures)

    return results


# ============================================================================
# STAGE 2: CARAPACE-SIZE ESTIMATOR
# ============================================================================

def analyze_carapace_estimator(modern, save_figures=True):
    """
    Fit and select the CA_H ~ RUD_V calibration on modern specimens.

    Returns
    -------
    dict
        'selection': ModelSelection
        'estimator': selected FittedModel
        'diagnostics': per-specimen residual / leverage table
    """
    selection = fit_carapace_estimator(modern)
    estimator = selection.selected

    ids = modern[COLS['specimen_id']] if COLS['specimen_id'] in modern.columns else None
    diagnostics = regression_diagnostics(estimator, id_column=ids, verbose=True)

    fig, _ = plot_model_selection(selection)
    _save(fig, 'carapace_model_selection.png', save_figures)
    fig, _ = plot_regression_fit(estimator, diagnostics=diagnostics)
    _save(fig, 'carapace_estimator.png', save_figures)

    return {
        'selection': selection,
        'estimator': estimator,
        'diagnostics': diagnostics,
    }


# ============================================================================
# STAGE 3: IMPUTATION AND COMPOSED ESTIMATES
# ============================================================================

def analyze_imputation(archaeological, modern, estimator, save_figures=True):
    """
    Fit the RUD_V ~ RUD_H imputer, fill missing RUD_V and estimate CA_H.

    Also compares this study's carapace calibration with the configured
    reference equation on the completed archaeological RUD_V values.
    """
    imputer = fit_dactyl_imputer(modern)
    print(f"\nImputer: {imputer.equation()} (R²={imputer.rsquared:.3f}, n={imputer.nobs})")

    estimate = estimate_carapace_size(archaeological, estimator, imputer,
                                      confidence=CONFIDENCE_LEVEL)

    fig, _ = plot_imputation(estimate.imputation, modern=modern)
    _save(fig, 'dactyl_imputation.png', save_figures)

    results = {
        'imputer': imputer,
        'estimate': estimate,
        'specimens': estimate.specimens,
    }

    reference = get_reference_equation()
    if reference.predictor == estimator.predictor:
        try:
            results['reference_comparison'] = compare_with_reference(
                estimate.specimens, estimator, reference,
                subset='archaeological (completed RUD_V)'
            )
        except MissingDataError as e:
            print(f"\n[ERROR] Reference comparison: {e}")
            results['reference_comparison'] = {'error': str(e)}

    return results


# ============================================================================
# STAGE 4: ISOTOPES
# ============================================================================

def analyze_isotopes(estimates, modern, water=None, save_figures=True, archaeological=None):
    """
    Isotope correlation and comparison suite.

    Parameters
    ----------
    estimates : DataFrame or None
        Archaeological specimens with composed carapace estimates. When None,
        only the size analyses are skipped.
    modern : DataFrame
        Modern specimens
    water : DataFrame, optional
        Water samples
    save_figures : bool
    archaeological : DataFrame, optional
        Archaeological specimens for the assemblage comparison when there
        are no estimates

    Returns
    -------
    dict
        One entry per analysis; failed analyses hold {'error': message}
    """
    size_filter = default_size_filter()
    results = {}

    if estimates is None:
        print("  Size analyses skipped: no carapace estimates")
        results['size_isotope'] = {'error': 'no carapace estimates'}
        results['size_isotope_matrix'] = {'error': 'no carapace estimates'}
    else:
        try:
            results['size_isotope'] = size_isotope_correlations(estimates, data_filter=size_filter)
            fig, _ = plot_size_isotope(estimates, results['size_isotope'])
            _save(fig, 'size_vs_isotopes.png', save_figures)
        except MissingDataError as e:
            print(f"\n[ERROR] Size vs isotopes: {e}")
            results['size_isotope'] = {'error': str(e)}

        try:
            results['size_isotope_matrix'] = size_isotope_matrix(estimates, data_filter=size_filter)
            fig, _ = plot_correlation_matrix(results['size_isotope_matrix'])
            _save(fig, 'size_isotope_matrix.png', save_figures)
        except MissingDataError as e:
            print(f"\n[ERROR] Correlation matrix: {e}")
            results['size_isotope_matrix'] = {'error': str(e)}

    assemblage = estimates if estimates is not None else archaeological
    if assemblage is not None:
        try:
            results['assemblages'] = compare_assemblages(modern, assemblage,
                                                         archaeological_filter=size_filter)
        except MissingDataError as e:
            print(f"\n[ERROR] Archaeological vs modern: {e}")
            results['assemblages'] = {'error': str(e)}

    for key, group_col in (('wadis', COLS['wadi']), ('years', COLS['year'])):
        if group_col not in modern.columns:
            continue
        results[key] = {}
        for iso in ISOTOPE_COLS:
            try:
                results[key][iso] = compare_groups(modern, group_col, iso)
            except MissingDataError as e:
                print(f"\n[ERROR] {iso} by {group_col}: {e}")
                results[key][iso] = {'error': str(e)}

    if water is not None and COLS['water_id'] in modern.columns:
        results['pool_groups'] = water_carapace_by_pool_group(modern, water)
        fig, _ = plot_pool_groups(results['pool_groups'])
        _save(fig, 'pool_groups_d18O.png', save_figures)

    return results


# ============================================================================
# FULL PIPELINE
# ============================================================================

def run_full_analysis(data_dir=None, save_figures=True):
    """
    Run the complete pipeline in dependency order.

    Parameters
    ----------
    data_dir : str, optional
        Folder with the CSV tables
    save_figures : bool
        Save figures to OUTPUT_DIR

    Returns
    -------
    dict
        All results
    """
    timer = AnalysisTimer()
    total_steps = 6

    print("\n" + "=" * 70)
    print("CRAB DACTYL ANALYSIS - FULL PIPELINE")
    print("=" * 70)
    print(f"Started at: {time.strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Total steps: {total_steps}")
    print("=" * 70)

    matplotlib.use('Agg')
    setup_plot_style()
    if save_figures:
        ensure_output_dir()
    print_config_summary(data_dir)

    results = {}
    step = 0

    # Step 1: Load data
    step += 1
    print_step_header(step, total_steps, "Loading Data")
    with timed_step(timer, "Load data"):
        tables = load_data(data_dir)
        results['tables'] = tables

    # Step 2: Treatment effect
    step += 1
    print_step_header(step, total_steps, "Stage 1: Treatment-Effect Check")
    with timed_step(timer, "Treatment effect"):
        results['treatment'] = run_treatment_check(tables.get('treatment'))

    # Step 3: Descriptive statistics
    step += 1
    print_step_header(step, total_steps, "Descriptive Statistics")
    with timed_step(timer, "Descriptive statistics"):
        results['descriptive'] = analyze_descriptive(tables, save_figures=save_figures)

    # Step 4: Carapace estimator
    step += 1
    print_step_header(step, total_steps, "Stage 2: Carapace-Size Estimator")
    with timed_step(timer, "Carapace estimator"):
        try:
            results['estimator'] = analyze_carapace_estimator(tables['modern'],
                                                              save_figures=save_figures)
        except MissingDataError as e:
            print(f"\n[ERROR] Carapace estimator: {e}")
            results['estimator'] = {'error': str(e)}

    # Step 5: Imputation (needs the estimator)
    step += 1
    print_step_header(step, total_steps, "Stage 3: Missing-Dactyl Imputer")
    with timed_step(timer, "Imputation"):
        if 'estimator' in results['estimator']:
            try:
                results['imputation'] = analyze_imputation(
                    tables['archaeological'], tables['modern'],
                    results['estimator']['estimator'], save_figures=save_figures
                )
            except MissingDataError as e:
                print(f"\n[ERROR] Imputation: {e}")
                results['imputation'] = {'error': str(e)}
        else:
            print("  Skipped: no carapace estimator")
            results['imputation'] = {'error': 'no carapace estimator'}

    # Step 6: Isotopes (only the size analyses need the composed estimates)
    step += 1
    print_step_header(step, total_steps, "Stage 4: Isotope Correlations")
    with timed_step(timer, "Isotope analyses"):
        results['isotopes'] = analyze_isotopes(
            results['imputation'].get('specimens'), tables['modern'],
            water=tables.get('water_samples'), save_figures=save_figures,
            archaeological=tables['archaeological']
        )

    results['timing'] = timer.summary()
    return results


def quick_start():
    """
    Quick start guide for interactive use.
    """
    print("""
CRAB DACTYL ANALYSIS - Quick Start Guide
========================================

1. Check data availability:
   >>> quick_data_check()

2. Load the tables:
   >>> tables = load_data()

3. Run individual stages:
   >>> run_treatment_check(tables['treatment'])
   >>> est = analyze_carapace_estimator(tables['modern'])
   >>> imp = analyze_imputation(tables['archaeological'], tables['modern'], est['estimator'])
   >>> iso = analyze_isotopes(imp['specimens'], tables['modern'], tables['water_samples'])

4. Run full pipeline:
   >>> all_results = run_full_analysis()

Tips:
- Update DATA_DIR in config.py or set CRAB_DATA_DIR
- Outlier exclusions: EXCLUDED_SPECIMENS in config.py
- Reference equation: REFERENCE_EQUATIONS in config.py
""")


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Crab Dactyl Analysis')
    parser.add_argument('--check', action='store_true',
                        help='Check data availability only')
    parser.add_argument('--full', action='store_true',
                        help='Run full analysis pipeline')
    parser.add_argument('--stage', type=int, choices=[1, 2, 3, 4],
                        help='Run the pipeline up to this stage')
    parser.add_argument('--data-dir', default=None,
                        help='Folder with the input CSV tables')
    parser.add_argument('--no-figures', action='store_true',
                        help='Do not save figures')

    args = parser.parse_args()
    save = not args.no_figures

    if args.check:
        quick_data_check(args.data_dir)
    elif args.full:
        run_full_analysis(data_dir=args.data_dir, save_figures=save)
    elif args.stage:
        matplotlib.use('Agg')
        if save:
            ensure_output_dir()
        tables = load_data(args.data_dir)
        if args.stage == 1:
            run_treatment_check(tables.get('treatment'))
        else:
            est = analyze_carapace_estimator(tables['modern'], save_figures=save)
            if args.stage >= 3:
                imp = analyze_imputation(tables['archaeological'], tables['modern'],
                                         est['estimator'], save_figures=save)
                if args.stage == 4:
                    analyze_isotopes(imp['specimens'], tables['modern'],
                                     water=tables.get('water_samples'), save_figures=save)
    else:
        quick_start()
