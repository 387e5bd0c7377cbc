"""
Per-core reconstruction of diameter, age and abrupt-increase index.

Input is a mapping holding exactly three tables:
- ``core``: core_id, tree_id, dist_param, optional dbh_mm (measured
  diameter), optional missing_mm / missing_years (pith offset)
- ``ring``: core_id, year, incr_mm, optionally missing_mm / missing_years
- ``dist_param``: dist_param, ai_mm, gap_mm

The whole batch is validated before any core is processed; a validation
failure raises and nothing is returned.
"""
from typing import Dict, Mapping

import numpy as np
import pandas as pd

from .exceptions import InvalidDataError, MissingColumnError, MissingTableError
from .logging_config import get_logger, log_stage_summary
from .parameter_table import REQUIRED_COLUMNS as PARAMETER_COLUMNS
from .rolling import follow_growth, prior_growth

__all__ = [
    'REQUIRED_TABLES',
    'REQUIRED_COLUMNS',
    'GROWTH_COLUMNS',
    'validate_tables',
    'build_core_series',
    'build_growth_series',
]

logger = get_logger(__name__)

REQUIRED_TABLES = ('core', 'ring', 'dist_param')

REQUIRED_COLUMNS: Dict[str, tuple] = {
    'core': ('core_id', 'tree_id', 'dist_param'),
    'ring': ('core_id', 'year', 'incr_mm'),
    'dist_param': PARAMETER_COLUMNS,
}

GROWTH_COLUMNS = [
    'core_id', 'tree_id', 'dist_param', 'year', 'incr_mm',
    'age', 'dbh_mm', 'pg', 'fg', 'ai',
]


def validate_tables(tables: Mapping[str, pd.DataFrame]) -> None:
    """Check the table set and the columns/keys the builder relies on.

    Raises:
        MissingTableError: If the mapping does not hold exactly core, ring and dist_param
        MissingColumnError: If a table lacks a required column
        InvalidDataError: On duplicate keys, negative increments or rings of unknown cores
    """
    present = set(tables)
    required = set(REQUIRED_TABLES)
    if present != required:
        raise MissingTableError(REQUIRED_TABLES, required - present, present - required)

    for name, columns in REQUIRED_COLUMNS.items():
        missing = set(columns) - set(tables[name].columns)
        if missing:
            raise MissingColumnError(name, missing)

    core, ring = tables['core'], tables['ring']
    if core['core_id'].duplicated().any():
        dupes = core.loc[core['core_id'].duplicated(), 'core_id'].unique()
        raise InvalidDataError("core table", f"duplicated core_id {list(dupes[:10])}")
    if ring.duplicated(['core_id', 'year']).any():
        dupes = ring.loc[ring.duplicated(['core_id', 'year']), 'core_id'].unique()
        raise InvalidDataError("ring table", f"duplicated years for cores {list(dupes[:10])}")
    if (ring['incr_mm'] < 0).any():
        raise InvalidDataError("ring table", "incr_mm must not be negative")
    unknown = set(ring['core_id']) - set(core['core_id'])
    if unknown:
        raise InvalidDataError("ring table",
                               f"rings reference unknown cores {sorted(map(str, unknown))[:10]}")


def _pith_offset(rings: pd.DataFrame, core: pd.Series, column: str) -> float:
    """Pith-offset value from the ring table, falling back to the core table, else 0."""
    if column in rings.columns:
        values = rings[column].dropna()
        if len(values):
            return float(values.iloc[0])
    if column in core.index and pd.notna(core[column]):
        return float(core[column])
    return 0.0


def build_core_series(rings: pd.DataFrame, core: pd.Series,
                      window_length: int = 10) -> pd.DataFrame:
    """Reconstruct the growth records of a single core.

    Args:
        rings: Ring rows of the core (any order)
        core: Core metadata row (core_id, tree_id, dist_param, optional dbh_mm)
        window_length: Window of the prior/following growth means

    Returns:
        DataFrame with GROWTH_COLUMNS, one row per calendar year from the
        first to the last ring; years without a ring have NaN incr_mm
    """
    rings = rings.sort_values('year')
    observed = rings['year'].to_numpy(dtype=int)
    years = np.arange(observed[0], observed[-1] + 1)
    incr = (pd.Series(rings['incr_mm'].to_numpy(dtype=float), index=observed)
            .reindex(years).to_numpy(dtype=float))
    if len(years) > len(observed):
        logger.debug(f"Core {core['core_id']}: {len(years) - len(observed)} "
                     f"missing ring years filled with NaN")

    missing_mm = _pith_offset(rings, core, 'missing_mm')
    missing_years = _pith_offset(rings, core, 'missing_years')

    # first ring carries the pith offset; missing rings add nothing
    growth = np.nan_to_num(incr, nan=0.0)
    growth[0] += missing_mm
    diameter = np.cumsum(growth) * 2.0

    measured = core.get('dbh_mm', np.nan)
    final = diameter[-1]
    if pd.notna(measured) and final > 0:
        diameter = diameter * (float(measured) / final)
    elif pd.notna(measured):
        logger.warning(f"Core {core['core_id']}: reconstructed diameter is zero, "
                       f"measured dbh_mm={measured} not applied")

    pg = prior_growth(incr, window_length)
    fg = follow_growth(incr, window_length)

    return pd.DataFrame({
        'core_id': core['core_id'],
        'tree_id': core['tree_id'],
        'dist_param': core['dist_param'],
        'year': years,
        'incr_mm': incr,
        'age': (years - years[0]) + int(missing_years) + 1,
        'dbh_mm': diameter,
        'pg': pg,
        'fg': fg,
        'ai': fg - pg,
    }, columns=GROWTH_COLUMNS)


def build_growth_series(tables: Mapping[str, pd.DataFrame],
                        window_length: int = 10) -> pd.DataFrame:
    """Reconstruct growth records for every core with rings.

    Args:
        tables: Mapping with exactly the ``core``, ``ring`` and ``dist_param`` tables
        window_length: Window of the prior/following growth means

    Returns:
        DataFrame with GROWTH_COLUMNS sorted by core_id and year

    Raises:
        MissingTableError, MissingColumnError, InvalidDataError: See validate_tables
    """
    validate_tables(tables)
    cores = tables['core'].set_index('core_id', drop=False)
    ring = tables['ring']

    series = [
        build_core_series(rings, cores.loc[core_id], window_length)
        for core_id, rings in ring.groupby('core_id', sort=True)
    ]
    if not series:
        growth = pd.DataFrame(columns=GROWTH_COLUMNS)
    else:
        growth = pd.concat(series, ignore_index=True)

    no_rings = set(cores.index) - set(ring['core_id'])
    if no_rings:
        logger.debug(f"{len(no_rings)} cores have no ring observations")
    log_stage_summary(logger, "Growth series", len(ring), len(growth))
    return growth
