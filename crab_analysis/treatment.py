"""
Treatment-effect check for split isotope samples.

Each split sample was measured untreated and after chemical pretreatment.
The check reports treated - untreated per sample and per isotope. It is a
plain difference with no test attached.
"""

import numpy as np
import pandas as pd

from .config import COLS, ISOTOPE_COLS


def treatment_columns(isotope):
    """Column names of the untreated / treated measurement of an isotope."""
    return f"{isotope}_untreated", f"{isotope}_treated"


def compute_treatment_effect(table, isotopes=None, id_col=None, verbose=True):
    """
    Per-sample treatment offsets.

    Parameters
    ----------
    table : DataFrame
        One row per split sample with ``<isotope>_untreated`` and
        ``<isotope>_treated`` columns
    isotopes : list of str, optional
        Isotopes to check (default: d13C and d18O)
    id_col : str, optional
        Sample identifier column (default from config)
    verbose : bool
        Print the summary table

    Returns
    -------
    dict
        'differences': DataFrame of treated - untreated per sample
        'summary': DataFrame with n, mean, sd, max |difference| per isotope
    """
    if isotopes is None:
        isotopes = ISOTOPE_COLS
    if id_col is None:
        id_col = COLS['sample_id']

    required = [col for iso in isotopes for col in treatment_columns(iso)]
    missing = [col for col in required if col not in table.columns]
    if missing:
        raise ValueError(f"Missing treatment columns: {missing}. Available: {list(table.columns)}")

    differences = pd.DataFrame(index=table.index)
    if id_col in table.columns:
        differences[id_col] = table[id_col]

    for iso in isotopes:
        untreated, treated = treatment_columns(iso)
        differences[f"{iso}_diff"] = (pd.to_numeric(table[treated], errors='coerce')
                                      - pd.to_numeric(table[untreated], errors='coerce'))

    rows = []
    for iso in isotopes:
        diff = differences[f"{iso}_diff"].dropna()
        rows.append({
            'isotope': iso,
            'n': len(diff),
            'mean_diff': diff.mean() if len(diff) else np.nan,
            'sd_diff': diff.std(ddof=1) if len(diff) > 1 else np.nan,
            'max_abs_diff': diff.abs().max() if len(diff) else np.nan,
        })
    summary = pd.DataFrame(rows).set_index('isotope')

    if verbose:
        print("\n" + "=" * 60)
        print("TREATMENT EFFECT (treated - untreated)")
        print("=" * 60)
        print(f"{'Isotope':<10} {'n':<5} {'Mean Δ':<10} {'SD Δ':<10} {'Max |Δ|':<10}")
        print("-" * 60)
        for iso, row in summary.iterrows():
            print(f"{iso:<10} {int(row['n']):<5} {row['mean_diff']:<10.3f} "
                  f"{row['sd_diff']:<10.3f} {row['max_abs_diff']:<10.3f}")
        print("-" * 60)

    return {'differences': differences, 'summary': summary}
