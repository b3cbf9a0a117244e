"""
Descriptive statistics for the part-count and measurement tables.
"""

import numpy as np
import pandas as pd

from .config import COLS

LEFT_SIDES = {'l', 'left', 'sin', 'sinistral'}
RIGHT_SIDES = {'r', 'right', 'dex', 'dextral'}


def _side_label(value):
    if pd.isna(value):
        return None
    value = str(value).strip().lower()
    if value in LEFT_SIDES:
        return 'left'
    if value in RIGHT_SIDES:
        return 'right'
    return None


def summarize_part_counts(part_counts, element_col=None, side_col=None, count_col=None,
                          verbose=True):
    """
    NISP and MNI per skeletal element.

    Parameters
    ----------
    part_counts : DataFrame
        One row per element (and side) with a count column
    element_col, side_col, count_col : str, optional
        Column names (default from config). The side column is optional.
    verbose : bool
        Print the table

    Returns
    -------
    DataFrame
        Indexed by element: NISP, pct_NISP, left, right, MNI.
        MNI is the larger of the left and right counts; unsided and
        unidentified-side fragments count towards NISP only. Elements
        without sided counts get MNI = NaN.
    """
    element_col = element_col or COLS['element']
    side_col = side_col or COLS['side']
    count_col = count_col or COLS['count']

    for col in (element_col, count_col):
        if col not in part_counts.columns:
            raise ValueError(f"Column '{col}' not found. Available: {list(part_counts.columns)}")

    counts = part_counts.copy()
    counts[count_col] = pd.to_numeric(counts[count_col], errors='coerce').fillna(0)

    summary = counts.groupby(element_col, sort=True)[count_col].sum().to_frame('NISP')
    total = summary['NISP'].sum()
    summary['pct_NISP'] = 100 * summary['NISP'] / total if total > 0 else np.nan

    if side_col in counts.columns and counts[side_col].map(_side_label).notna().any():
        counts['_side'] = counts[side_col].map(_side_label)
        sided = (counts.dropna(subset=['_side'])
                 .pivot_table(index=element_col, columns='_side', values=count_col,
                              aggfunc='sum', fill_value=0))
        for side in ('left', 'right'):
            summary[side] = sided[side] if side in sided.columns else 0
        summary[['left', 'right']] = summary[['left', 'right']].fillna(0)
        summary['MNI'] = summary[['left', 'right']].max(axis=1)
        summary.loc[summary[['left', 'right']].sum(axis=1) == 0, 'MNI'] = np.nan
    else:
        summary['left'] = np.nan
        summary['right'] = np.nan
        summary['MNI'] = np.nan

    summary = summary.sort_values('NISP', ascending=False)

    if verbose:
        print("\n" + "=" * 60)
        print("PART COUNTS")
        print("=" * 60)
        print(f"{'Element':<25} {'NISP':>6} {'%':>7} {'MNI':>6}")
        print("-" * 60)
        for element, row in summary.iterrows():
            mni = '-' if pd.isna(row['MNI']) else f"{row['MNI']:.0f}"
            print(f"{str(element):<25} {row['NISP']:>6.0f} {row['pct_NISP']:>6.1f}% {mni:>6}")
        print("-" * 60)
        print(f"{'Total':<25} {total:>6.0f}")

    return summary


def describe_measurements(df, columns, by=None):
    """
    Summary statistics per measurement column, optionally per group.

    Missing values are dropped per column.

    Returns
    -------
    DataFrame
        Columns: variable, [group], n, mean, sd, min, max, cv_pct
    """
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Columns not found: {missing}. Available: {list(df.columns)}")

    groups = [(None, df)] if by is None else list(df.groupby(by, sort=True))

    rows = []
    for group, sub in groups:
        for col in columns:
            values = pd.to_numeric(sub[col], errors='coerce').dropna()
            mean = values.mean() if len(values) else np.nan
            sd = values.std(ddof=1) if len(values) > 1 else np.nan
            row = {'variable': col}
            if by is not None:
                row[by] = group
            row.update({
                'n': len(values),
                'mean': mean,
                'sd': sd,
                'min': values.min() if len(values) else np.nan,
                'max': values.max() if len(values) else np.nan,
                'cv_pct': 100 * sd / mean if len(values) > 1 and mean != 0 else np.nan,
            })
            rows.append(row)

    return pd.DataFrame(rows)
