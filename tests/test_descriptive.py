import numpy as np
import pandas as pd
import pytest

from crab_analysis.descriptive import summarize_part_counts, describe_measurements


def test_part_counts_nisp_and_mni(tables):
    summary = summarize_part_counts(tables['part_counts'], verbose=False)

    assert list(summary.index) == ['Dactyl', 'Chela', 'Carapace']
    assert summary.loc['Dactyl', 'NISP'] == 40
    assert summary.loc['Dactyl', 'MNI'] == 20
    assert summary.loc['Chela', 'MNI'] == 5
    assert np.isnan(summary.loc['Carapace', 'MNI'])
    assert summary['pct_NISP'].sum() == pytest.approx(100.0)


def test_part_counts_side_spellings():
    counts = pd.DataFrame({'Element': ['Dactyl'] * 3,
                           'Side': ['left', 'Sin', 'R'],
                           'NISP': [2, 3, 4]})
    summary = summarize_part_counts(counts, verbose=False)
    assert summary.loc['Dactyl', 'left'] == 5
    assert summary.loc['Dactyl', 'MNI'] == 5


def test_part_counts_without_side_column():
    counts = pd.DataFrame({'Element': ['Dactyl', 'Chela'], 'NISP': [3, 1]})
    summary = summarize_part_counts(counts, verbose=False)
    assert summary['MNI'].isna().all()
    assert summary.loc['Dactyl', 'NISP'] == 3


def test_part_counts_requires_columns():
    with pytest.raises(ValueError):
        summarize_part_counts(pd.DataFrame({'Element': ['Dactyl']}), verbose=False)


def test_describe_measurements_grouped(tables):
    modern = tables['modern']
    table = describe_measurements(modern, ['RUD_V', 'CA_H'], by='Wadi')
    assert len(table) == 4
    row = table[(table['variable'] == 'RUD_V') & (table['Wadi'] == 'Wadi A')].iloc[0]
    values = modern.loc[modern['Wadi'] == 'Wadi A', 'RUD_V']
    assert row['n'] == len(values)
    assert row['mean'] == pytest.approx(values.mean())
    assert row['cv_pct'] == pytest.approx(100 * values.std() / values.mean())


def test_describe_measurements_drops_missing_per_column():
    df = pd.DataFrame({'RUD_V': [10.0, np.nan, 14.0], 'RUD_H': [5.0, 6.0, 7.0]})
    table = describe_measurements(df, ['RUD_V', 'RUD_H']).set_index('variable')
    assert table.loc['RUD_V', 'n'] == 2
    assert table.loc['RUD_H', 'n'] == 3
