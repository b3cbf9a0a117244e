"""
Data Loading Module for the Crab Dactyl Analysis
=================================================

This module loads the input CSV tables:
- Archaeological part counts (NISP by element and side)
- Archaeological specimens (dactyl measurements, isotopes, square)
- Modern specimens (dactyl and carapace measurements, isotopes, water key)
- Water samples (d18O_SMOW, covariates, pool group, coordinates)
- Site locations (coordinates of sites and collection points)
- Treatment splits (isotopes before / after pretreatment)

Key Features:
- Missing-value markers converted to NaN
- Numeric columns coerced, required columns checked
- Non-positive morphometric values treated as missing
- Carapace d18O put on the VSMOW scale where only VPDB is given

Dependencies:
- pandas
- numpy
"""

import os
import warnings
import numpy as np
import pandas as pd

from .config import (
    COLS, DATA_FILES, MISSING_VALUES, MORPHOMETRIC_COLS, ISOTOPE_COLS,
    get_data_path
)
from .isotope_analysis import with_smow
from .treatment import treatment_columns


SPECIMEN_NUMERIC = MORPHOMETRIC_COLS + ISOTOPE_COLS + [COLS['d18o_smow']]


# ============================================================================
# GENERIC READER
# ============================================================================

def read_table(path, required=(), numeric=(), name=None):
    """
    Read one CSV table.

    Parameters
    ----------
    path : str
        CSV file
    required : list of str
        Columns that must be present
    numeric : list of str
        Columns coerced to float (unparseable values become NaN); absent
        optional columns are skipped
    name : str, optional
        Table name for messages

    Returns
    -------
    pandas.DataFrame
    """
    name = name or os.path.basename(path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Table '{name}' not found: {path}")

    df = pd.read_csv(path, na_values=MISSING_VALUES, keep_default_na=True)
    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Table '{name}' is missing required columns: {missing}. "
                         f"Available: {list(df.columns)}")

    for col in numeric:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors='coerce')

    return df


def apply_measurement_filters(df, columns=None, verbose=True):
    """
    Treat non-positive morphometric values as missing.

    Measurements are lengths in mm, so zero or negative entries are
    recording errors. Returns a new DataFrame.
    """
    columns = [c for c in (columns or MORPHOMETRIC_COLS) if c in df.columns]
    df_clean = df.copy()

    for col in columns:
        bad = df_clean[col] <= 0
        if bad.any():
            warnings.warn(f"{col}: {int(bad.sum())} non-positive value(s) treated as missing")
            df_clean.loc[bad, col] = np.nan
        if verbose:
            print(f"  {col}: {int(df_clean[col].notna().sum())} measured")

    return df_clean


# ============================================================================
# TABLE LOADERS
# ============================================================================

def load_part_counts(path=None, data_dir=None):
    """Archaeological part counts (Element, optional Side, NISP)."""
    path = path or get_data_path('part_counts', data_dir)
    print(f"Loading part counts: {path}")
    df = read_table(path, required=[COLS['element'], COLS['count']],
                    numeric=[COLS['count']], name='part_counts')
    print(f"  Records: {len(df):,}")
    return df


def load_archaeological_specimens(path=None, data_dir=None, verbose=True):
    """Archaeological specimens (Spec_ID, Square, dactyl measurements, isotopes)."""
    path = path or get_data_path('archaeological', data_dir)
    print(f"Loading archaeological specimens: {path}")
    df = read_table(path,
                    required=[COLS['specimen_id'], COLS['rud_v'], COLS['rud_h']],
                    numeric=SPECIMEN_NUMERIC, name='archaeological')
    print(f"  Specimens: {len(df):,}")
    df = apply_measurement_filters(df, verbose=verbose)
    return with_smow(df)


def load_modern_specimens(path=None, data_dir=None, verbose=True):
    """Modern specimens (Spec_ID, Wadi, Year, measurements incl. CA_H, isotopes, Water_ID)."""
    path = path or get_data_path('modern', data_dir)
    print(f"Loading modern specimens: {path}")
    df = read_table(path,
                    required=[COLS['specimen_id'], COLS['rud_v'], COLS['rud_h'], COLS['ca_h']],
                    numeric=SPECIMEN_NUMERIC + [COLS['year']], name='modern')
    print(f"  Specimens: {len(df):,}")
    df = apply_measurement_filters(df, verbose=verbose)
    return with_smow(df)


def load_water_samples(path=None, data_dir=None):
    """Water samples (Water_ID, Wadi, d18O_SMOW, covariates, Pool_Group, coordinates)."""
    path = path or get_data_path('water_samples', data_dir)
    print(f"Loading water samples: {path}")
    df = read_table(path,
                    required=[COLS['water_id'], COLS['d18o_smow']],
                    numeric=[COLS['d18o_smow'], COLS['temperature'], COLS['ph'],
                             COLS['depth'], COLS['lat'], COLS['lon']],
                    name='water_samples')
    duplicated = df[COLS['water_id']].duplicated()
    if duplicated.any():
        raise ValueError(f"Duplicate water sample IDs: "
                         f"{df.loc[duplicated, COLS['water_id']].tolist()}")
    print(f"  Samples: {len(df):,}")
    return df


def load_site_locations(path=None, data_dir=None):
    """Site / collection point coordinates (Site, Latitude, Longitude)."""
    path = path or get_data_path('site_locations', data_dir)
    print(f"Loading site locations: {path}")
    df = read_table(path, required=[COLS['site'], COLS['lat'], COLS['lon']],
                    numeric=[COLS['lat'], COLS['lon']], name='site_locations')
    print(f"  Locations: {len(df):,}")
    return df


def load_treatment_table(path=None, data_dir=None):
    """Split samples with <isotope>_untreated / <isotope>_treated columns."""
    path = path or get_data_path('treatment', data_dir)
    print(f"Loading treatment splits: {path}")
    value_cols = [col for iso in ISOTOPE_COLS for col in treatment_columns(iso)]
    df = read_table(path, required=value_cols, numeric=value_cols, name='treatment')
    print(f"  Split samples: {len(df):,}")
    return df


LOADERS = {
    'part_counts': load_part_counts,
    'archaeological': load_archaeological_specimens,
    'modern': load_modern_specimens,
    'water_samples': load_water_samples,
    'site_locations': load_site_locations,
    'treatment': load_treatment_table,
}


def load_all(data_dir=None, optional=('site_locations', 'treatment')):
    """
    Load every input table.

    Tables listed in ``optional`` are skipped (value None) when their file
    does not exist; the others raise FileNotFoundError.

    Returns
    -------
    dict
        table name -> DataFrame (or None)
    """
    tables = {}
    for name, loader in LOADERS.items():
        path = get_data_path(name, data_dir)
        if name in optional and not os.path.exists(path):
            print(f"  Skipping optional table '{name}' (not found: {path})")
            tables[name] = None
            continue
        tables[name] = loader(path=path)
    return tables


# ============================================================================
# SUMMARIES
# ============================================================================

def summarize_dataset(df, name='table'):
    """
    Print rows and per-column completeness of a table.

    Parameters
    ----------
    df : DataFrame
    name : str
    """
    print("\n" + "=" * 60)
    print(f"{name.upper()} SUMMARY")
    print("=" * 60)
    print(f"\nRows: {len(df):,}")
    print(f"\n{'Column':<20} {'Present':>8} {'Missing':>8}")
    print("-" * 40)
    for col in df.columns:
        n_missing = int(df[col].isna().sum())
        print(f"{str(col):<20} {len(df) - n_missing:>8} {n_missing:>8}")


def quick_data_check(data_dir=None):
    """
    Perform quick check of all input tables.
    Useful for initial validation that everything is accessible.
    """
    print("\n" + "=" * 60)
    print("DATA AVAILABILITY CHECK")
    print("=" * 60)

    status = {}
    for i, name in enumerate(DATA_FILES, start=1):
        path = get_data_path(name, data_dir)
        exists = os.path.exists(path)
        status[name] = exists
        if exists:
            try:
                n_rows = len(pd.read_csv(path, na_values=MISSING_VALUES))
                print(f"  [{i}] ✓ {name}: {n_rows} rows ({path})")
            except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
                print(f"  [{i}] ? {name}: exists but error reading - {e}")
        else:
            print(f"  [{i}] ✗ {name}: NOT FOUND ({path})")

    print("\n" + "=" * 60)
    return status
