import numpy as np
import pandas as pd
import pytest

from crab_analysis.exceptions import MissingDataError
from crab_analysis.isotope_analysis import (
    all_rows, exclude_specimens, restrict_to, require_columns,
    vpdb_to_smow, with_smow, size_isotope_correlations, size_isotope_matrix,
    water_carapace_by_pool_group, compare_assemblages, compare_groups
)


@pytest.fixture
def estimates():
    rng = np.random.default_rng(5)
    n = 12
    size = np.linspace(18, 40, n)
    return pd.DataFrame({
        'Spec_ID': [f"A{i}" for i in range(n)],
        'Square': ['A', 'B'] * (n // 2),
        'CA_H_est': size,
        'd13C': -9 + 0.05 * size + rng.normal(0, 0.2, n),
        'd18O': rng.normal(-3, 0.5, n),
    })


@pytest.fixture
def specimens_and_water():
    specimens = pd.DataFrame({
        'Spec_ID': [f"M{i}" for i in range(8)],
        'Water_ID': ['W1', 'W1', 'W2', 'W3', 'W4', 'W4', 'W5', None],
        'd18O': [-4.2, -4.0, -3.9, -4.4, -2.6, -2.9, -2.7, -3.0],
    })
    water = pd.DataFrame({
        'Water_ID': ['W1', 'W2', 'W3', 'W4', 'W5', 'W6'],
        'Pool_Group': ['P1', 'P1', 'P1', 'P2', 'P2', 'P2'],
        'd18O_SMOW': [-3.1, -3.0, -2.8, -1.9, -2.2, -2.0],
    })
    return specimens, water


def test_filters_select_rows_and_combine_names(estimates):
    flt = exclude_specimens(['A0', 'A3']) & restrict_to('Square', 'A')
    subset = flt.apply(estimates)
    assert set(subset['Spec_ID']) == {'A2', 'A4', 'A6', 'A8', 'A10'}
    assert 'exclude A0, A3' in flt.name
    assert 'Square == A' in flt.name
    assert len(all_rows().apply(estimates)) == len(estimates)


def test_require_columns_filter():
    df = pd.DataFrame({'a': [1.0, np.nan, 3.0], 'b': [1.0, 2.0, np.nan]})
    assert list(require_columns(['a', 'b']).apply(df).index) == [0]


def test_vpdb_to_smow_conversion():
    assert vpdb_to_smow(0.0) == pytest.approx(30.91)
    assert vpdb_to_smow(-10.0) == pytest.approx(1.03091 * -10.0 + 30.91)


def test_with_smow_fills_only_missing_values():
    df = pd.DataFrame({'d18O': [-4.0, -3.0], 'd18O_SMOW': [26.0, np.nan]})
    out = with_smow(df)
    assert out.loc[0, 'd18O_SMOW'] == 26.0
    assert out.loc[1, 'd18O_SMOW'] == pytest.approx(vpdb_to_smow(-3.0))
    assert np.isnan(df.loc[1, 'd18O_SMOW'])


def test_size_isotope_correlations_on_named_subset(estimates):
    flt = exclude_specimens(['A0'])
    results = size_isotope_correlations(estimates, data_filter=flt, verbose=False)
    assert set(results) == {'d13C', 'd18O'}
    assert results['d13C'].n == 11
    assert results['d13C'].subset == flt.name
    assert results['d13C'].r > 0.5


def test_size_isotope_matrix(estimates):
    result = size_isotope_matrix(estimates, data_filter=all_rows(), verbose=False)
    assert result.columns == ('CA_H_est', 'd13C', 'd18O')
    assert len(result.pairs) == 3
    assert result.subset == 'all'


def test_size_isotope_empty_subset_raises(estimates):
    flt = restrict_to('Square', 'Z')
    with pytest.raises(MissingDataError):
        size_isotope_correlations(estimates, data_filter=flt, verbose=False)


def test_water_carapace_by_pool_group(specimens_and_water):
    specimens, water = specimens_and_water
    result = water_carapace_by_pool_group(specimens, water, verbose=False)

    merged = result['merged']
    assert len(merged) == 7
    assert {'carapace_d18O_SMOW', 'water_d18O_SMOW', 'Pool_Group'} <= set(merged.columns)
    assert merged['carapace_d18O_SMOW'].iloc[0] == pytest.approx(vpdb_to_smow(-4.2))

    summary = result['summary']
    assert list(summary.index) == ['P1', 'P2']
    assert summary.loc['P1', 'n_specimens'] == 4
    assert summary.loc['P2', 'n_water'] == 3
    assert summary.loc['P1', 'offset'] == pytest.approx(
        summary.loc['P1', 'mean_carapace'] - summary.loc['P1', 'mean_water'])

    assert result['correlation'].n == 7
    assert set(result['group_tests']) == {'P1', 'P2'}


def test_water_samples_must_be_unique(specimens_and_water):
    specimens, water = specimens_and_water
    duplicated = pd.concat([water, water.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError):
        water_carapace_by_pool_group(specimens, duplicated, verbose=False)


def test_water_analysis_requires_columns(specimens_and_water):
    specimens, water = specimens_and_water
    with pytest.raises(ValueError):
        water_carapace_by_pool_group(specimens, water.drop(columns=['Pool_Group']),
                                     verbose=False)


def test_compare_assemblages_difference_is_archaeological_minus_modern():
    modern = pd.DataFrame({'d13C': [-8.0, -8.2, -7.8, -8.1], 'd18O': [-4.0, -4.1, -3.9, -4.2]})
    arch = pd.DataFrame({'Spec_ID': ['A1', 'A2', 'A3', 'A4'],
                         'd13C': [-7.0, -7.1, -6.9, -7.2], 'd18O': [-3.0, -3.2, -2.9, -3.1]})
    results = compare_assemblages(modern, arch, archaeological_filter=all_rows(), verbose=False)
    assert results['d13C'].diff == pytest.approx(np.mean(arch['d13C']) - np.mean(modern['d13C']))
    assert results['d13C'].a_name == 'archaeological'
    assert results['d18O'].significant()


def test_compare_groups_needs_two_groups():
    df = pd.DataFrame({'Wadi': ['A', 'A', 'A', 'B'], 'd18O': [-4.0, -4.1, -3.9, -2.0]})
    with pytest.raises(MissingDataError):
        compare_groups(df, 'Wadi', 'd18O', verbose=False)


def test_compare_groups_by_year():
    df = pd.DataFrame({'Year': [2019] * 4 + [2021] * 4,
                       'd13C': [-8.0, -8.1, -7.9, -8.2, -6.0, -6.1, -5.9, -6.2]})
    results = compare_groups(df, 'Year', 'd13C', verbose=False)
    assert results['n_comparisons'] == 1
    assert results['comparisons'][0]['significant']
    assert results['subset'] == 'all'
