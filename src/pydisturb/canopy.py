"""
Canopy-area utilities for pydisturb.

Provides the tree-to-plot bridge: choosing one core per tree, attaching plot
and allometry information to tree events, and evaluating per-species
canopy-area formulas.

Allometric formulas are expressions in ``dbh_mm`` using arithmetic and the
numpy math functions supported by ``pandas.eval`` (exp, log, sqrt, ...),
for example ``"exp(-2.5 + 1.4 * log(dbh_mm / 10))"``.
"""
from typing import Dict, Mapping, Optional

import numpy as np
import pandas as pd

from .exceptions import InvalidDataError, MissingColumnError
from .logging_config import get_logger, log_stage_summary

__all__ = [
    'TREE_COLUMNS',
    'canopy_area',
    'attach_canopy_area',
    'representative_cores',
    'tree_event_table',
]

logger = get_logger(__name__)

TREE_COLUMNS = ['plotid', 'tree_id', 'core_id', 'year', 'event', 'dbh_mm',
                'species', 'ca_formula']


def canopy_area(dbh_mm, formula: str) -> np.ndarray:
    """Evaluate an allometric canopy-area formula.

    Args:
        dbh_mm: Diameter(s) at breast height in mm
        formula: Expression in the variable ``dbh_mm``

    Returns:
        Canopy area for each diameter

    Raises:
        InvalidDataError: If the formula cannot be evaluated
    """
    dbh = pd.Series(np.atleast_1d(np.asarray(dbh_mm, dtype=float)))
    try:
        area = pd.eval(formula, local_dict={'dbh_mm': dbh})
    except Exception as e:
        raise InvalidDataError("canopy-area formula", f"{formula!r}: {e}") from e
    return np.broadcast_to(np.asarray(area, dtype=float), dbh.shape).copy()


def attach_canopy_area(trees: pd.DataFrame) -> pd.DataFrame:
    """Add a ``ca_m2`` column computed from each row's dbh_mm and ca_formula."""
    missing = {'dbh_mm', 'ca_formula'} - set(trees.columns)
    if missing:
        raise MissingColumnError('trees', missing)
    trees = trees.reset_index(drop=True)
    trees['ca_m2'] = np.nan
    for formula, rows in trees.groupby('ca_formula', sort=False).groups.items():
        trees.loc[rows, 'ca_m2'] = canopy_area(trees.loc[rows, 'dbh_mm'], formula)
    return trees


def representative_cores(growth: pd.DataFrame) -> pd.Series:
    """Choose one core per tree: the one reaching furthest back, ties by core_id.

    Returns:
        Series mapping tree_id to core_id
    """
    first = (growth.groupby(['tree_id', 'core_id'], sort=True)['year'].min()
             .reset_index()
             .sort_values(['tree_id', 'year', 'core_id'], kind='stable'))
    return first.drop_duplicates('tree_id').set_index('tree_id')['core_id']


def tree_event_table(events: pd.DataFrame, cores: pd.DataFrame, growth: pd.DataFrame,
                     allometry: Optional[Mapping[str, str]] = None) -> pd.DataFrame:
    """Build the per-tree event table used for plot aggregation.

    Args:
        events: Core events (see tree_events.EVENT_COLUMNS)
        cores: Core metadata with plotid and either ca_formula or species
        growth: Growth records, used to choose one core per tree
        allometry: Optional mapping of species to canopy-area formula; used
            where the core table carries no ca_formula

    Returns:
        DataFrame with TREE_COLUMNS, one or more rows per tree

    Raises:
        MissingColumnError: If plotid or an allometry source is missing
        InvalidDataError: If a tree has no canopy-area formula
    """
    if 'plotid' not in cores.columns:
        raise MissingColumnError('core', {'plotid'})
    if 'ca_formula' not in cores.columns and ('species' not in cores.columns or not allometry):
        raise MissingColumnError('core', {'ca_formula'})

    chosen = representative_cores(growth)
    meta_columns = [c for c in ('core_id', 'plotid', 'species', 'ca_formula') if c in cores.columns]
    meta = cores[meta_columns].copy()
    if 'species' not in meta.columns:
        meta['species'] = np.nan
    if 'ca_formula' not in meta.columns:
        meta['ca_formula'] = np.nan
    if allometry:
        lookup: Dict[str, str] = dict(allometry)
        meta['ca_formula'] = meta['ca_formula'].fillna(meta['species'].map(lookup))

    trees = events[events['core_id'].isin(chosen.values)].merge(meta, on='core_id', how='left')
    if trees['ca_formula'].isna().any():
        bad = trees.loc[trees['ca_formula'].isna(), 'tree_id'].unique()
        raise InvalidDataError("tree table",
                               f"no canopy-area formula for trees {list(map(str, bad[:10]))}")

    log_stage_summary(logger, "Tree table", len(events), len(trees))
    return trees[TREE_COLUMNS].reset_index(drop=True)
