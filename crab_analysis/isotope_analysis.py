"""
Isotope Correlation and Comparison Suite
=========================================

Analyses linking the carapace-size estimates and the water chemistry to the
carbonate isotope values:

- Size vs isotopes: Pearson tests and a Holm-corrected correlation matrix
  between estimated carapace height, d13C and d18O
- Water vs carapace: specimen d18O (VSMOW) against the d18O of the water
  sample it was collected with, summarised per pool group
- Assemblage and group comparisons: Welch tests between the archaeological
  and modern assemblages, and pairwise between wadis or years

Every analysis runs on an explicit, named subset (``AnalysisFilter``). The
filter is part of the analysis definition and its name is carried into the
result records.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Any

import numpy as np
import pandas as pd

from .config import (
    COLS, ISOTOPE_COLS, ESTIMATE_COLS, EXCLUDED_SPECIMENS, FOCUS_SQUARE,
    VPDB_TO_SMOW, CONFIDENCE_LEVEL, CORRECTION_METHOD, ALPHA
)
from .exceptions import MissingDataError
from .statistical_tests import (
    CorrelationResult, CorrelationMatrixResult, WelchResult,
    pearson_test, correlation_matrix, welch_t_test,
    pairwise_comparisons_with_correction
)


# ============================================================================
# ANALYSIS FILTERS
# ============================================================================

@dataclass(frozen=True)
class AnalysisFilter:
    """
    Named row predicate defining the subset an analysis runs on.

    ``predicate`` maps a DataFrame to a boolean Series on the same index.
    Filters combine with ``&``.
    """
    name: str
    description: str
    predicate: Callable[[pd.DataFrame], pd.Series]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        mask = self.predicate(df)
        return pd.Series(mask, index=df.index).fillna(False).astype(bool)

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.loc[self.mask(df)].copy()

    def __and__(self, other: 'AnalysisFilter') -> 'AnalysisFilter':
        return AnalysisFilter(
            name=f"{self.name} & {other.name}",
            description=f"{self.description}; {other.description}",
            predicate=lambda df: self.mask(df) & other.mask(df),
        )


def all_rows() -> AnalysisFilter:
    return AnalysisFilter('all', 'all rows',
                          lambda df: pd.Series(True, index=df.index))


def exclude_specimens(ids: Sequence[Any], id_col: Optional[str] = None) -> AnalysisFilter:
    id_col = id_col or COLS['specimen_id']
    ids = tuple(ids)
    return AnalysisFilter(
        name=f"exclude {', '.join(map(str, ids))}" if ids else 'no exclusions',
        description=f"{id_col} not in {list(ids)}",
        predicate=lambda df: ~df[id_col].isin(ids),
    )


def restrict_to(column: str, value: Any) -> AnalysisFilter:
    return AnalysisFilter(
        name=f"{column} == {value}",
        description=f"only rows with {column} == {value!r}",
        predicate=lambda df: df[column] == value,
    )


def require_columns(columns: Sequence[str]) -> AnalysisFilter:
    columns = list(columns)
    return AnalysisFilter(
        name=f"complete {'/'.join(columns)}",
        description=f"rows with all of {columns} present",
        predicate=lambda df: df[columns].notna().all(axis=1),
    )


def default_size_filter() -> AnalysisFilter:
    """Configured outlier exclusions, plus the focus square when one is set."""
    data_filter = exclude_specimens(EXCLUDED_SPECIMENS)
    if FOCUS_SQUARE is not None:
        data_filter = data_filter & restrict_to(COLS['square'], FOCUS_SQUARE)
    return data_filter


# ============================================================================
# ISOTOPE SCALES
# ============================================================================

def vpdb_to_smow(d18o_vpdb):
    """Convert carbonate d18O from the VPDB to the VSMOW scale."""
    slope, intercept = VPDB_TO_SMOW
    return slope * d18o_vpdb + intercept


def with_smow(df: pd.DataFrame, vpdb_col: Optional[str] = None,
              smow_col: Optional[str] = None) -> pd.DataFrame:
    """Copy of ``df`` with the VSMOW column filled from VPDB where missing."""
    vpdb_col = vpdb_col or COLS['d18o']
    smow_col = smow_col or COLS['d18o_smow']
    out = df.copy()
    if vpdb_col not in out.columns:
        return out
    converted = vpdb_to_smow(pd.to_numeric(out[vpdb_col], errors='coerce'))
    if smow_col in out.columns:
        out[smow_col] = pd.to_numeric(out[smow_col], errors='coerce').fillna(converted)
    else:
        out[smow_col] = converted
    return out


# ============================================================================
# (a) SIZE vs ISOTOPES
# ============================================================================

def size_isotope_correlations(
    estimates: pd.DataFrame,
    size_col: Optional[str] = None,
    isotopes: Optional[Sequence[str]] = None,
    data_filter: Optional[AnalysisFilter] = None,
    confidence: float = CONFIDENCE_LEVEL,
    verbose: bool = True
) -> Dict[str, CorrelationResult]:
    """
    Pearson test of estimated carapace height against each isotope.

    Parameters
    ----------
    estimates : DataFrame
        Specimens with the composed carapace estimate
    size_col : str, optional
        Size column (default: ESTIMATE_COLS['fit'])
    isotopes : list of str, optional
        Isotope columns (default: d13C, d18O)
    data_filter : AnalysisFilter, optional
        Subset definition (default: ``default_size_filter()``)
    confidence : float
    verbose : bool

    Returns
    -------
    dict
        isotope -> CorrelationResult
    """
    size_col = size_col or ESTIMATE_COLS['fit']
    isotopes = list(isotopes or ISOTOPE_COLS)
    data_filter = data_filter or default_size_filter()

    subset = data_filter.apply(estimates)
    results = {}
    for iso in isotopes:
        results[iso] = pearson_test(subset[size_col], subset[iso], confidence=confidence,
                                    x_name=size_col, y_name=iso, subset=data_filter.name)

    if verbose:
        print("\n" + "=" * 70)
        print("CARAPACE SIZE vs ISOTOPES")
        print(f"Subset: {data_filter.name} ({data_filter.description})")
        print("=" * 70)
        print(f"{'Isotope':<12} {'n':<5} {'r':<8} {'CI':<20} {'t':<8} {'df':<5} {'p':<10}")
        print("-" * 70)
        for iso, res in results.items():
            ci = f"[{res.ci_low:.3f}, {res.ci_high:.3f}]"
            print(f"{iso:<12} {res.n:<5} {res.r:<8.3f} {ci:<20} {res.t:<8.2f} "
                  f"{res.df:<5} {res.p_value:<10.4f}")
        print("-" * 70)

    return results


def size_isotope_matrix(
    estimates: pd.DataFrame,
    columns: Optional[Sequence[str]] = None,
    data_filter: Optional[AnalysisFilter] = None,
    correction_method: str = CORRECTION_METHOD,
    alpha: float = ALPHA,
    verbose: bool = True
) -> CorrelationMatrixResult:
    """Holm-corrected correlation matrix of size, d13C and d18O."""
    columns = list(columns or [ESTIMATE_COLS['fit']] + list(ISOTOPE_COLS))
    data_filter = data_filter or default_size_filter()
    subset = data_filter.apply(estimates)
    return correlation_matrix(subset, columns, correction_method=correction_method,
                              alpha=alpha, subset=data_filter.name, verbose=verbose)


# ============================================================================
# (c) WATER vs CARAPACE BY POOL GROUP
# ============================================================================

def water_carapace_by_pool_group(
    specimens: pd.DataFrame,
    water: pd.DataFrame,
    data_filter: Optional[AnalysisFilter] = None,
    key: Optional[str] = None,
    group_col: Optional[str] = None,
    confidence: float = CONFIDENCE_LEVEL,
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Compare carapace d18O with the d18O of the associated water samples.

    Specimens are joined many-to-one to water samples on the water key.
    Carapace values are put on the VSMOW scale first (``with_smow``).

    Parameters
    ----------
    specimens : DataFrame
        Modern specimens with the water key and d18O
    water : DataFrame
        Water samples with the water key, pool group and d18O_SMOW
    data_filter : AnalysisFilter, optional
        Subset of specimens (default: all rows)
    key, group_col : str, optional
        Column names (default from config)
    confidence : float
    verbose : bool

    Returns
    -------
    dict
        'merged': specimen rows with 'carapace_d18O_SMOW' and
            'water_d18O_SMOW'
        'summary': per pool group n_specimens, n_water, mean_carapace,
            mean_water, offset (carapace - water)
        'correlation': specimen-level CorrelationResult, or None when there
            are too few pairs
        'group_tests': pool group -> WelchResult (carapace vs water), only
            for groups with at least two values on both sides
        'skipped': analysis label -> reason for tests that could not run
    """
    key = key or COLS['water_id']
    group_col = group_col or COLS['pool_group']
    smow = COLS['d18o_smow']
    data_filter = data_filter or all_rows()

    for name, df, cols in (('specimens', specimens, [key]), ('water', water, [key, group_col, smow])):
        missing = [c for c in cols if c not in df.columns]
        if missing:
            raise ValueError(f"{name}: columns not found: {missing}. Available: {list(df.columns)}")

    carapace = with_smow(data_filter.apply(specimens))
    if smow not in carapace.columns:
        raise ValueError(f"specimens: need '{smow}' or '{COLS['d18o']}' for carapace d18O")
    carapace = carapace.rename(columns={smow: f"carapace_{smow}"})
    carapace = carapace.drop(columns=[group_col], errors='ignore')

    water_values = water[[key, group_col, smow]].copy()
    water_values[smow] = pd.to_numeric(water_values[smow], errors='coerce')
    water_values = water_values.rename(columns={smow: f"water_{smow}"})

    merged = carapace.dropna(subset=[key]).merge(water_values, on=key, how='inner',
                                                 validate='many_to_one')
    carapace_col, water_col = f"carapace_{smow}", f"water_{smow}"

    skipped = {}
    try:
        correlation = pearson_test(merged[carapace_col], merged[water_col],
                                   confidence=confidence, x_name=water_col,
                                   y_name=carapace_col, subset=data_filter.name)
    except MissingDataError as e:
        correlation = None
        skipped['correlation'] = str(e)

    rows = []
    group_tests = {}
    for group, water_group in water_values.groupby(group_col, sort=True):
        carapace_values = merged.loc[merged[group_col] == group, carapace_col].dropna()
        water_group_values = water_group[water_col].dropna()
        mean_carapace = carapace_values.mean() if len(carapace_values) else np.nan
        mean_water = water_group_values.mean() if len(water_group_values) else np.nan
        rows.append({
            group_col: group,
            'n_specimens': len(carapace_values),
            'n_water': len(water_group_values),
            'mean_carapace': mean_carapace,
            'mean_water': mean_water,
            'offset': mean_carapace - mean_water,
        })
        try:
            group_tests[group] = welch_t_test(
                carapace_values, water_group_values, confidence=confidence,
                a_name=carapace_col, b_name=water_col,
                subset=f"{group_col} == {group}"
            )
        except MissingDataError as e:
            skipped[f"{group_col} == {group}"] = str(e)

    summary = pd.DataFrame(rows)
    if len(summary):
        summary = summary.set_index(group_col)

    if verbose:
        print("\n" + "=" * 80)
        print("WATER vs CARAPACE d18O (VSMOW) BY POOL GROUP")
        print(f"Subset: {data_filter.name}")
        print("=" * 80)
        print(f"{'Pool group':<14} {'n spec':<8} {'n water':<8} {'Carapace':<10} "
              f"{'Water':<10} {'Offset':<10} {'p (Welch)':<10}")
        print("-" * 80)
        for group, row in summary.iterrows():
            test = group_tests.get(group)
            p_text = f"{test.p_value:.4f}" if test is not None else '-'
            print(f"{str(group):<14} {int(row['n_specimens']):<8} {int(row['n_water']):<8} "
                  f"{row['mean_carapace']:<10.2f} {row['mean_water']:<10.2f} "
                  f"{row['offset']:<10.2f} {p_text:<10}")
        print("-" * 80)
        if correlation is not None:
            print(f"Specimen-level r = {correlation.r:.3f} "
                  f"[{correlation.ci_low:.3f}, {correlation.ci_high:.3f}], "
                  f"p = {correlation.p_value:.4f}, n = {correlation.n}")
        for label, reason in skipped.items():
            print(f"  skipped {label}: {reason}")

    return {
        'merged': merged,
        'summary': summary,
        'correlation': correlation,
        'group_tests': group_tests,
        'skipped': skipped,
    }


# ============================================================================
# ASSEMBLAGE AND GROUP COMPARISONS
# ============================================================================

def compare_assemblages(
    modern: pd.DataFrame,
    archaeological: pd.DataFrame,
    variables: Optional[Sequence[str]] = None,
    modern_filter: Optional[AnalysisFilter] = None,
    archaeological_filter: Optional[AnalysisFilter] = None,
    confidence: float = CONFIDENCE_LEVEL,
    verbose: bool = True
) -> Dict[str, WelchResult]:
    """
    Welch test of archaeological vs modern values for each variable.

    The difference reported is archaeological - modern.
    """
    variables = list(variables or ISOTOPE_COLS)
    modern_filter = modern_filter or all_rows()
    archaeological_filter = archaeological_filter or default_size_filter()

    modern_subset = modern_filter.apply(modern)
    arch_subset = archaeological_filter.apply(archaeological)
    label = f"archaeological: {archaeological_filter.name}; modern: {modern_filter.name}"

    results = {}
    for var in variables:
        results[var] = welch_t_test(arch_subset[var], modern_subset[var],
                                    confidence=confidence, a_name='archaeological',
                                    b_name='modern', subset=label)

    if verbose:
        print("\n" + "=" * 80)
        print("ARCHAEOLOGICAL vs MODERN (Welch)")
        print(f"Subset: {label}")
        print("=" * 80)
        print(f"{'Variable':<12} {'n arch':<8} {'n mod':<8} {'Mean arch':<10} {'Mean mod':<10} "
              f"{'Diff':<8} {'CI':<18} {'p':<8}")
        print("-" * 80)
        for var, res in results.items():
            ci = f"[{res.ci_low:.2f}, {res.ci_high:.2f}]"
            print(f"{var:<12} {res.n_a:<8} {res.n_b:<8} {res.mean_a:<10.2f} {res.mean_b:<10.2f} "
                  f"{res.diff:<8.2f} {ci:<18} {res.p_value:<8.4f}")
        print("-" * 80)

    return results


def compare_groups(
    df: pd.DataFrame,
    group_col: str,
    variable: str,
    data_filter: Optional[AnalysisFilter] = None,
    test: str = 'welch',
    correction_method: str = CORRECTION_METHOD,
    alpha: float = ALPHA,
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Pairwise comparison of ``variable`` between groups (e.g. wadis, years).

    Groups with fewer than two non-missing values are left out.
    """
    data_filter = data_filter or all_rows()
    subset = data_filter.apply(df)
    values = pd.to_numeric(subset[variable], errors='coerce')

    data_by_group = {}
    for group, group_values in values.groupby(subset[group_col], sort=True):
        group_values = group_values.dropna()
        if len(group_values) >= 2:
            data_by_group[group] = group_values.to_numpy()

    if len(data_by_group) < 2:
        raise MissingDataError((group_col, variable), len(data_by_group), 2, data_filter.name)

    results = pairwise_comparisons_with_correction(
        data_by_group, test=test, correction_method=correction_method,
        alpha=alpha, verbose=verbose
    )
    results['variable'] = variable
    results['group_col'] = group_col
    results['subset'] = data_filter.name
    return results
