"""
Spatial helpers for water samples and collection points.

Pool groups are assigned by hand: samples collected within roughly
POOL_GROUP_RADIUS_M of each other share a group. ``pool_group_extents``
measures each group in metres so the assignment can be checked.

Dependencies:
- geopandas (shapely, pyproj)
- scipy
"""

import numpy as np
import pandas as pd
import geopandas as gpd
from scipy.spatial.distance import pdist

from .config import COLS, POOL_GROUP_RADIUS_M


def to_geodataframe(df, lat_col=None, lon_col=None, target_crs=None, verbose=True):
    """
    Convert a table with latitude/longitude columns to a point GeoDataFrame.

    Parameters
    ----------
    df : DataFrame
        Table with WGS84 coordinates
    lat_col, lon_col : str, optional
        Column names (default from config)
    target_crs : str or CRS, optional
        Reproject to this CRS; 'utm' picks the local UTM zone
    verbose : bool

    Returns
    -------
    GeoDataFrame
        Rows without coordinates are dropped.
    """
    lat_col = lat_col or COLS['lat']
    lon_col = lon_col or COLS['lon']

    if lat_col not in df.columns or lon_col not in df.columns:
        raise ValueError(
            f"Lat/lon columns not found. Looking for '{lat_col}' and '{lon_col}'. "
            f"Available columns: {list(df.columns)}"
        )

    coords = df[[lat_col, lon_col]].apply(pd.to_numeric, errors='coerce')
    located = coords.notna().all(axis=1)
    if verbose and not located.all():
        print(f"  Dropping {int((~located).sum())} row(s) without coordinates")

    points = df.loc[located].copy()
    geometry = gpd.points_from_xy(coords.loc[located, lon_col], coords.loc[located, lat_col])
    gdf = gpd.GeoDataFrame(points, geometry=geometry, crs="EPSG:4326")

    if target_crs == 'utm':
        target_crs = gdf.estimate_utm_crs()
    if target_crs is not None and str(gdf.crs) != str(target_crs):
        gdf = gdf.to_crs(target_crs)

    return gdf


def pool_group_extents(water, group_col=None, radius_m=POOL_GROUP_RADIUS_M,
                       lat_col=None, lon_col=None, verbose=True):
    """
    Size of each pool group in metres.

    Parameters
    ----------
    water : DataFrame
        Water samples with coordinates and a pool group column
    group_col : str, optional
        Pool group column (default from config)
    radius_m : float
        Proximity radius the manual grouping is meant to respect
    verbose : bool

    Returns
    -------
    DataFrame
        Indexed by pool group: n_samples, max_from_centroid_m,
        max_pairwise_m, within_radius
    """
    group_col = group_col or COLS['pool_group']
    if group_col not in water.columns:
        raise ValueError(f"Column '{group_col}' not found. Available: {list(water.columns)}")

    gdf = to_geodataframe(water.dropna(subset=[group_col]), lat_col=lat_col,
                          lon_col=lon_col, target_crs='utm', verbose=verbose)

    rows = []
    for group, members in gdf.groupby(group_col, sort=True):
        xy = np.column_stack([members.geometry.x, members.geometry.y])
        from_centroid = np.sqrt(((xy - xy.mean(axis=0)) ** 2).sum(axis=1))
        pairwise = pdist(xy)
        rows.append({
            group_col: group,
            'n_samples': len(members),
            'max_from_centroid_m': float(from_centroid.max()),
            'max_pairwise_m': float(pairwise.max()) if len(pairwise) else 0.0,
        })

    extents = pd.DataFrame(rows)
    if len(extents) == 0:
        return extents
    extents = extents.set_index(group_col)
    extents['within_radius'] = extents['max_from_centroid_m'] <= radius_m

    if verbose:
        print("\n" + "=" * 60)
        print(f"POOL GROUP EXTENTS (radius {radius_m:.0f} m)")
        print("=" * 60)
        print(f"{'Pool group':<14} {'n':<4} {'Max to centroid (m)':<22} {'Max pair (m)':<14}")
        print("-" * 60)
        for group, row in extents.iterrows():
            flag = "" if row['within_radius'] else "  ! exceeds radius"
            print(f"{str(group):<14} {int(row['n_samples']):<4} "
                  f"{row['max_from_centroid_m']:<22.1f} {row['max_pairwise_m']:<14.1f}{flag}")

    return extents
