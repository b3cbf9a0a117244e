"""
Crab Dactyl Analysis Package
============================

A Python package for estimating carapace size of freshwater crabs from
dactyl (claw finger) measurements and relating size and water chemistry
to carbonate stable isotopes, for archaeological and modern assemblages.

Core Idea: Calibrate carapace height on modern specimens, impute missing
dactyl dimensions, and carry prediction intervals through to every
archaeological size estimate.

Modules:
    config            - Configuration settings and paths
    exceptions        - MissingDataError, DegenerateFitWarning
    data_loading      - Load the CSV tables
    treatment         - Pretreatment effect on isotope values
    descriptive       - Part counts (NISP, MNI) and measurement summaries
    regression        - OLS fitting, prediction intervals, model selection
    imputation        - Dactyl imputation and composed carapace estimates
    statistical_tests - Pearson, Welch and Holm-corrected comparisons
    isotope_analysis  - Size / water / assemblage isotope analyses
    spatial           - Pool group extents in metres
    visualization     - Publication-quality plotting
    main              - Orchestration and pipeline

Quick Start:
    >>> from crab_analysis import load_data, analyze_carapace_estimator
    >>> tables = load_data()
    >>> results = analyze_carapace_estimator(tables['modern'])
"""

__version__ = '0.1.0'

# Import key functions for convenient access
from .config import (
    COLS, ESTIMATE_COLS, CONFIDENCE_LEVEL,
    ensure_output_dir, print_config_summary
)

from .exceptions import MissingDataError, DegenerateFitWarning

from .data_loading import (
    load_all,
    quick_data_check,
    summarize_dataset
)

from .regression import (
    fit_ols,
    predict,
    select_model,
    regression_diagnostics,
    fit_carapace_estimator
)

from .imputation import (
    fit_dactyl_imputer,
    impute_missing_dactyl,
    estimate_carapace_size,
    compare_with_reference
)

from .statistical_tests import (
    pearson_test,
    welch_t_test,
    correlation_matrix
)

from .main import (
    load_data,
    run_treatment_check,
    analyze_carapace_estimator,
    analyze_imputation,
    analyze_isotopes,
    run_full_analysis,
    quick_start
)
