import os

import numpy as np
import pandas as pd
import pytest

from crab_analysis.config import DATA_FILES


@pytest.fixture
def modern_exact():
    """Modern specimens with CA_H = 2·RUD_V and RUD_V = 2·RUD_H exactly."""
    return pd.DataFrame({
        'Spec_ID': ['M1', 'M2', 'M3', 'M4'],
        'RUD_V': [10.0, 12.0, 14.0, 16.0],
        'RUD_H': [5.0, 6.0, 7.0, 8.0],
        'CA_H': [20.0, 24.0, 28.0, 32.0],
    })


@pytest.fixture
def archaeological_exact():
    return pd.DataFrame({
        'Spec_ID': ['A1', 'A2', 'A3', 'A4'],
        'RUD_V': [11.0, np.nan, np.nan, 13.5],
        'RUD_H': [9.0, 5.0, np.nan, np.nan],
    })


def make_tables(seed=0):
    """Small but realistic input tables, keyed like DATA_FILES."""
    rng = np.random.default_rng(seed)

    n_modern = 30
    rud_v = rng.uniform(8, 20, n_modern)
    modern = pd.DataFrame({
        'Spec_ID': [f"M{i:02d}" for i in range(n_modern)],
        'Wadi': np.where(np.arange(n_modern) % 2 == 0, 'Wadi A', 'Wadi B'),
        'Year': np.where(np.arange(n_modern) < 15, 2019, 2021),
        'Water_ID': [f"W{i % 6 + 1}" for i in range(n_modern)],
        'RUD_V': rud_v,
        'RUD_H': 0.5 * rud_v + rng.normal(0, 0.3, n_modern),
        'CA_H': 2.0 * rud_v + 1.0 + rng.normal(0, 1.0, n_modern),
        'd13C': rng.normal(-8, 1, n_modern),
        'd18O': rng.normal(-4, 0.8, n_modern),
    })

    n_arch = 25
    arch_v = rng.uniform(9, 22, n_arch)
    archaeological = pd.DataFrame({
        'Spec_ID': [f"A{i:02d}" for i in range(n_arch)],
        'Square': np.where(np.arange(n_arch) % 3 == 0, 'B', 'A'),
        'RUD_V': np.where(np.arange(n_arch) % 5 == 0, np.nan, arch_v),
        'RUD_H': 0.5 * arch_v + rng.normal(0, 0.3, n_arch),
        'd13C': rng.normal(-7, 1, n_arch),
        'd18O': rng.normal(-3, 0.8, n_arch),
    })

    water = pd.DataFrame({
        'Water_ID': [f"W{i}" for i in range(1, 7)],
        'Wadi': ['Wadi A'] * 3 + ['Wadi B'] * 3,
        'Pool_Group': ['P1'] * 3 + ['P2'] * 3,
        'd18O_SMOW': [-3.1, -3.0, -2.8, -1.9, -2.2, -2.0],
        'Temp_C': [21.0, 22.5, 20.8, 24.1, 23.7, 25.0],
        'pH': [7.9, 8.0, 8.1, 8.3, 8.2, 8.4],
        'Latitude': [31.50000, 31.50003, 31.50006, 31.52000, 31.52004, 31.52001],
        'Longitude': [35.40000, 35.40002, 35.40004, 35.43000, 35.43003, 35.43006],
    })

    part_counts = pd.DataFrame({
        'Element': ['Dactyl', 'Dactyl', 'Dactyl', 'Chela', 'Chela', 'Carapace'],
        'Side': ['L', 'R', None, 'L', 'R', None],
        'NISP': [14, 20, 6, 5, 3, 2],
    })

    return {
        'part_counts': part_counts,
        'archaeological': archaeological,
        'modern': modern,
        'water_samples': water,
    }


def write_tables(directory, tables):
    for name, df in tables.items():
        df.to_csv(os.path.join(directory, DATA_FILES[name]), index=False)
    return str(directory)


@pytest.fixture
def tables():
    return make_tables()


@pytest.fixture
def data_dir(tmp_path, tables):
    return write_tables(tmp_path, tables)


@pytest.fixture
def table_writer():
    return write_tables
