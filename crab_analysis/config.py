"""
Configuration settings for the Crab Dactyl Analysis
====================================================

This module contains all paths, parameters, and constants for the analysis.
Users should modify the PATHS section (or set the environment variables)
for their specific system.

Project: Freshwater crab dactyls - carapace size and stable isotopes
"""

import os
from pathlib import Path

# ============================================================================
# PATHS - USER MODIFIES THESE FOR THEIR SYSTEM
# ============================================================================

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Folder holding the input CSV tables
DATA_DIR = os.environ.get('CRAB_DATA_DIR', str(PROJECT_ROOT / 'data'))

# One CSV per input table (file names relative to DATA_DIR)
DATA_FILES = {
    'part_counts': 'archaeological_part_counts.csv',
    'archaeological': 'archaeological_specimens.csv',
    'modern': 'modern_specimens.csv',
    'water_samples': 'water_samples.csv',
    'site_locations': 'site_locations.csv',
    'treatment': 'treatment_splits.csv',
}

PART_COUNTS_CSV = os.path.join(DATA_DIR, DATA_FILES['part_counts'])
ARCHAEOLOGICAL_CSV = os.path.join(DATA_DIR, DATA_FILES['archaeological'])
MODERN_CSV = os.path.join(DATA_DIR, DATA_FILES['modern'])
WATER_SAMPLES_CSV = os.path.join(DATA_DIR, DATA_FILES['water_samples'])
SITE_LOCATIONS_CSV = os.path.join(DATA_DIR, DATA_FILES['site_locations'])
TREATMENT_CSV = os.path.join(DATA_DIR, DATA_FILES['treatment'])

# Output directory (will be created if it doesn't exist)
OUTPUT_DIR = os.environ.get('CRAB_OUTPUT_DIR', str(PROJECT_ROOT / 'outputs'))

# ============================================================================
# COLUMN NAME MAPPING
# ============================================================================
# Column headers in the CSV tables (case-sensitive!)

COLS = {
    # Identity / provenance
    'specimen_id': 'Spec_ID',
    'wadi': 'Wadi',
    'year': 'Year',
    'square': 'Square',
    'water_id': 'Water_ID',
    'pool_group': 'Pool_Group',
    'site': 'Site',
    'sample_id': 'Sample_ID',

    # Morphometrics (mm)
    'rud_v': 'RUD_V',              # Right upper dactyl, ventral length
    'rud_h': 'RUD_H',              # Right upper dactyl, height
    'ca_h': 'CA_H',                # Carapace height

    # Stable isotopes (per mil)
    'd13c': 'd13C',                # VPDB
    'd18o': 'd18O',                # VPDB (carbonate)
    'd18o_smow': 'd18O_SMOW',      # VSMOW (water scale)

    # Water sample covariates
    'temperature': 'Temp_C',
    'ph': 'pH',
    'depth': 'Depth_cm',

    # Geolocation
    'lat': 'Latitude',
    'lon': 'Longitude',

    # Part counts
    'element': 'Element',
    'side': 'Side',
    'count': 'NISP',
}

MORPHOMETRIC_COLS = [COLS['rud_v'], COLS['rud_h'], COLS['ca_h']]
ISOTOPE_COLS = [COLS['d13c'], COLS['d18o']]

# Derived columns written by the composed predictor
ESTIMATE_COLS = {
    'fit': 'CA_H_est',
    'se_fit': 'CA_H_se',
    'pi_lower': 'CA_H_pi_lower',
    'pi_upper': 'CA_H_pi_upper',
}

# ============================================================================
# DATA QUALITY PARAMETERS
# ============================================================================

# Markers treated as missing when reading the CSV tables
MISSING_VALUES = ['', 'NA', 'N/A', 'na', 'nan', 'NaN', '-', '--', '-9999']

# ============================================================================
# STATISTICAL PARAMETERS
# ============================================================================

CONFIDENCE_LEVEL = 0.95
ALPHA = 0.05

# Familywise correction for correlation matrices and pairwise group tests
CORRECTION_METHOD = 'holm'

# Linear vs quadratic selection for the carapace estimator.
# The quadratic model is kept only if BOTH hold:
#   - nested-model F-test p-value < f_test_alpha
#   - adjusted R² gain >= min_delta_adj_r2
MODEL_SELECTION = {
    'f_test_alpha': 0.05,
    'min_delta_adj_r2': 0.01,
}

# Outlier diagnostics (informational only)
# High leverage: h_ii > LEVERAGE_FACTOR * p / n
# Influential:   Cook's D > COOKS_FACTOR / n
LEVERAGE_FACTOR = 2.0
COOKS_FACTOR = 4.0

# ============================================================================
# REFERENCE EQUATIONS
# ============================================================================
# Regressions from other studies compared against this fit. The default
# entry holds placeholder coefficients until the published values are filled in.
# Each entry: response = intercept + slope * predictor.
# Replace the coefficients (or add entries) to compare a different model.

REFERENCE_EQUATIONS = {
    'placeholder_dactyl_carapace': {
        'predictor': COLS['rud_v'],
        'response': COLS['ca_h'],
        'intercept': 1.96,
        'slope': 1.77,
        'source': 'Placeholder coefficients, replace with the published calibration',
    },
}

DEFAULT_REFERENCE = 'placeholder_dactyl_carapace'

# ============================================================================
# ANALYSIS FILTERS
# ============================================================================

# Specimens removed from the size-isotope analyses (known outliers)
EXCLUDED_SPECIMENS = ()

# Restrict archaeological analyses to one excavation square (None = all)
FOCUS_SQUARE = None

# ============================================================================
# ISOTOPE SCALES
# ============================================================================

# d18O(VSMOW) = a * d18O(VPDB) + b  (Coplen et al., 1983)
VPDB_TO_SMOW = (1.03091, 30.91)

# ============================================================================
# SPATIAL PARAMETERS
# ============================================================================

# Pool groups are manual clusters of samples collected within this radius
POOL_GROUP_RADIUS_M = 15.0

# ============================================================================
# VISUALIZATION PARAMETERS
# ============================================================================

PLOT_STYLE = 'seaborn-v0_8-whitegrid'

PLOT_PARAMS = {
    'font.size': 12,
    'axes.labelsize': 14,
    'axes.titlesize': 16,
    'legend.fontsize': 11,
    'figure.dpi': 150,
    'savefig.dpi': 300,
    'savefig.bbox': 'tight',
    'figure.figsize': (8, 6),
}

COLORS = {
    'modern': '#457B9D',
    'archaeological': '#E63946',
    'imputed': '#F4A261',
    'water': '#2A9D8F',
    'fit': 'black',
}

COLORMAPS = {
    'diverging': 'RdBu_r',
    'sequential': 'viridis',
}


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def ensure_output_dir():
    """Create output directory if it doesn't exist."""
    Path(OUTPUT_DIR).mkdir(parents=True, exist_ok=True)
    return OUTPUT_DIR


def get_data_path(table_name, data_dir=None):
    """Get path for a named input table."""
    if table_name not in DATA_FILES:
        raise ValueError(f"Unknown table: {table_name}. Available: {list(DATA_FILES.keys())}")
    return os.path.join(data_dir or DATA_DIR, DATA_FILES[table_name])


def print_config_summary(data_dir=None):
    """Print summary of current configuration."""
    print("=" * 60)
    print("CRAB DACTYL ANALYSIS - Configuration Summary")
    print("=" * 60)
    print(f"\nInput tables ({data_dir or DATA_DIR}):")
    for name in DATA_FILES:
        path = get_data_path(name, data_dir)
        exists = "✓" if os.path.exists(path) else "✗"
        print(f"  [{exists}] {name}: {path}")
    print(f"\nConfidence level: {CONFIDENCE_LEVEL}")
    print(f"Correction method: {CORRECTION_METHOD}")
    print(f"Model selection: F-test p < {MODEL_SELECTION['f_test_alpha']} "
          f"and ΔR²adj >= {MODEL_SELECTION['min_delta_adj_r2']}")
    print(f"Output Directory: {OUTPUT_DIR}")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
