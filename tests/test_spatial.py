import pandas as pd
import pytest

from crab_analysis.spatial import to_geodataframe, pool_group_extents


def test_to_geodataframe_drops_unlocated_rows():
    df = pd.DataFrame({'Site': ['a', 'b', 'c'],
                       'Latitude': [31.5, None, 31.6],
                       'Longitude': [35.4, 35.5, 35.45]})
    gdf = to_geodataframe(df, verbose=False)
    assert len(gdf) == 2
    assert gdf.crs.to_epsg() == 4326


def test_to_geodataframe_utm_is_projected():
    df = pd.DataFrame({'Latitude': [31.5], 'Longitude': [35.4]})
    gdf = to_geodataframe(df, target_crs='utm', verbose=False)
    assert gdf.crs.is_projected


def test_to_geodataframe_requires_coordinates():
    with pytest.raises(ValueError):
        to_geodataframe(pd.DataFrame({'x': [1.0]}), verbose=False)


def test_pool_group_extents(tables):
    water = tables['water_samples'].copy()
    # Spread one pool group over roughly 200 m
    water.loc[water['Pool_Group'] == 'P2', 'Latitude'] = [31.520, 31.521, 31.522]
    extents = pool_group_extents(water, radius_m=15.0, verbose=False)

    assert list(extents.index) == ['P1', 'P2']
    assert extents.loc['P1', 'n_samples'] == 3
    assert extents.loc['P1', 'within_radius']
    assert not extents.loc['P2', 'within_radius']
    assert extents.loc['P2', 'max_pairwise_m'] == pytest.approx(222, rel=0.05)


def test_single_sample_pool_group_has_zero_extent(tables):
    water = tables['water_samples'].copy()
    water.loc[0, 'Pool_Group'] = 'P0'
    extents = pool_group_extents(water, verbose=False)
    assert extents.loc['P0', 'n_samples'] == 1
    assert extents.loc['P0', 'max_pairwise_m'] == 0.0
    assert extents.loc['P0', 'within_radius']
