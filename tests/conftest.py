"""
Shared pytest fixtures for pydisturb tests.

Provides synthetic ring, core, parameter and plot tables so every stage can
be tested on its own without external data.
"""
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
import pytest

from pydisturb.parameter_table import DisturbanceParameterTable
from pydisturb.settings import PipelineSettings, load_settings


# =============================================================================
# Table Builders
# =============================================================================

def make_rings(core_id: str, first_year: int, increments: Sequence[float]) -> pd.DataFrame:
    """Ring table of one core with consecutive years starting at first_year."""
    return pd.DataFrame({
        'core_id': core_id,
        'year': np.arange(first_year, first_year + len(increments)),
        'incr_mm': np.asarray(increments, dtype=float),
    })


def make_tables(cores: List[Dict], dist_param: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Build the core/ring/dist_param mapping from core definitions.

    Each definition holds core_id, tree_id, dist_param, first_year and
    increments, and optionally dbh_mm, missing_years, plotid and ca_formula.
    """
    ring = pd.concat(
        [make_rings(c['core_id'], c['first_year'], c['increments']) for c in cores],
        ignore_index=True,
    )
    core = pd.DataFrame([
        {
            'core_id': c['core_id'],
            'tree_id': c['tree_id'],
            'dist_param': c['dist_param'],
            'dbh_mm': c.get('dbh_mm', np.nan),
            'missing_years': c.get('missing_years', 0),
            'plotid': c.get('plotid', 'P1'),
            'ca_formula': c.get('ca_formula', '0.1 * dbh_mm'),
        }
        for c in cores
    ])
    return {'core': core, 'ring': ring, 'dist_param': dist_param}


def release_increments(first_year: int, release_year: int, last_year: int,
                       slow: float = 1.0, fast: float = 6.0) -> List[float]:
    """Suppressed growth up to release_year, then fast growth until last_year."""
    return [slow if year <= release_year else fast
            for year in range(first_year, last_year + 1)]


# =============================================================================
# Parameter Fixtures
# =============================================================================

@pytest.fixture
def dist_param_frame():
    """Disturbance-parameter classes used across tests.

    - release_only: ai_mm 3, gap_mm high enough that no gap origin is found
    - gap_prone: gap_mm 5 for gap-origin tests
    - Fagus: the packaged beech thresholds
    """
    return pd.DataFrame({
        'dist_param': ['release_only', 'gap_prone', 'Fagus'],
        'ai_mm': [3.0, 3.0, 1.25],
        'gap_mm': [50.0, 5.0, 1.18],
    })


@pytest.fixture
def parameters(dist_param_frame):
    """DisturbanceParameterTable built from dist_param_frame."""
    return DisturbanceParameterTable.from_frame(dist_param_frame)


@pytest.fixture
def default_settings():
    """Packaged pipeline settings."""
    return PipelineSettings()


@pytest.fixture
def fast_settings():
    """Settings with few bootstrap replicates for quick end-to-end runs."""
    return load_settings(overrides={
        'stand': {'replicates': 25, 'plots_per_replicate': 4},
        'rotation': {'replicates': 50},
    })


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def release_core_tables(dist_param_frame):
    """Single core with increments [1]*5 + [10]*7 and no gap origin."""
    cores = [{
        'core_id': 'C1', 'tree_id': 'T1', 'dist_param': 'release_only',
        'first_year': 1900, 'increments': [1] * 5 + [10] * 7,
        'missing_years': 20,
    }]
    return make_tables(cores, dist_param_frame)


@pytest.fixture
def gap_core_tables(dist_param_frame):
    """Single core growing 6 mm/year from the pith, gap_mm 5."""
    cores = [{
        'core_id': 'C1', 'tree_id': 'T1', 'dist_param': 'gap_prone',
        'first_year': 1900, 'increments': [6.0] * 30,
    }]
    return make_tables(cores, dist_param_frame)


@pytest.fixture
def offset_gap_core_tables(dist_param_frame):
    """Core missing its first four rings, alternating 4/8 mm (ages 5-15 mean 5.8)."""
    cores = [{
        'core_id': 'C1', 'tree_id': 'T1', 'dist_param': 'gap_prone',
        'first_year': 1900, 'increments': [4.0, 8.0] * 15,
        'missing_years': 4,
    }]
    return make_tables(cores, dist_param_frame)


@pytest.fixture
def constant_core_tables(dist_param_frame):
    """Single core with constant 2 mm increments: neither release nor gap."""
    cores = [{
        'core_id': 'C1', 'tree_id': 'T1', 'dist_param': 'gap_prone',
        'first_year': 1850, 'increments': [2.0] * 60, 'dbh_mm': 300.0,
    }]
    return make_tables(cores, dist_param_frame)


# =============================================================================
# Plot and Stand Fixtures
# =============================================================================

STAND_RELEASE_YEAR = {'S1': 1899, 'S2': 1929}


@pytest.fixture
def forest_tables(dist_param_frame):
    """Two stands of three plots with five trees each.

    All trees of a stand are released in the same year (1899 in S1, 1929 in
    S2). Every tree has two cores; the second starts later and is never the
    representative core.
    """
    cores = []
    for stand, release_year in STAND_RELEASE_YEAR.items():
        for p in range(3):
            plotid = f"{stand}-P{p + 1}"
            for t in range(5):
                tree_id = f"{plotid}-T{t + 1}"
                increments = release_increments(1840, release_year, 1980)
                cores.append({
                    'core_id': f"{tree_id}-a", 'tree_id': tree_id,
                    'dist_param': 'release_only', 'first_year': 1840,
                    'increments': increments, 'dbh_mm': 400.0 + 10 * t,
                    'missing_years': 30, 'plotid': plotid,
                })
                cores.append({
                    'core_id': f"{tree_id}-b", 'tree_id': tree_id,
                    'dist_param': 'release_only', 'first_year': 1860,
                    'increments': increments[20:], 'dbh_mm': 400.0 + 10 * t,
                    'missing_years': 50, 'plotid': plotid,
                })
    return make_tables(cores, dist_param_frame)


@pytest.fixture
def plots():
    """Plot table for forest_tables."""
    rows = []
    for s, stand in enumerate(STAND_RELEASE_YEAR):
        for p in range(3):
            rows.append({
                'plotid': f"{stand}-P{p + 1}",
                'country': 'SK',
                'landscape': f"L{s + 1}",
                'newstand': stand,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def tree_table():
    """Tree table with a 5-tree plot and a 4-tree plot, all released in 1900."""
    rows = []
    for plotid, n_trees in (('P5', 5), ('P4', 4)):
        for t in range(n_trees):
            rows.append({
                'plotid': plotid, 'tree_id': f"{plotid}-T{t}", 'core_id': f"{plotid}-C{t}",
                'year': 1900, 'event': 'release', 'dbh_mm': 300.0,
                'species': 'Fagus', 'ca_formula': '0.1 * dbh_mm',
            })
    return pd.DataFrame(rows)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
