"""
Plot-level aggregation of tree events.

Tree events are weighted by canopy area and expressed as a percentage of the
plot's total sampled canopy area. The yearly disturbed-canopy series of each
plot is smoothed with ``mds_smooth`` and searched for peaks; each peak gets a
severity equal to the raw canopy percent disturbed in the surrounding window.

Plots with fewer than ``min_trees`` sampled trees are excluded.
"""
from typing import Optional

import numpy as np
import pandas as pd

from .canopy import attach_canopy_area
from .density import mds_smooth
from .logging_config import get_logger, log_exclusion, log_stage_summary
from .peaks import MISSING_SENTINEL, peak_detection
from .settings import DensitySettings, PlotSettings
from .tree_events import DISTURBANCE_EVENTS

__all__ = [
    'SERIES_COLUMNS',
    'PEAK_COLUMNS',
    'canopy_proportions',
    'plot_event_series',
    'window_sum',
    'detect_plot_peaks',
]

logger = get_logger(__name__)

SERIES_COLUMNS = ['plotid', 'year', 'ca_pct']
PEAK_COLUMNS = ['plotid', 'year', 'value', 'severity']


def canopy_proportions(trees: pd.DataFrame, by: str = 'event', min_trees: int = 5) -> pd.DataFrame:
    """Canopy area per (plot, category, year) as percent of each plot's canopy.

    Every tree counts once towards its plot total, with the canopy area of its
    earliest record.

    Args:
        trees: Tree table (see canopy.TREE_COLUMNS)
        by: Category column, ``'event'`` or ``'species'``
        min_trees: Plots with fewer distinct trees are dropped

    Returns:
        DataFrame with columns plotid, <by>, year, ca_m2, ca_pct
    """
    trees = attach_canopy_area(trees)

    tree_counts = trees.groupby('plotid')['tree_id'].nunique()
    small = tree_counts.index[tree_counts < min_trees]
    log_exclusion(logger, "plots", small, f"fewer than {min_trees} trees")
    trees = trees[~trees['plotid'].isin(small)]

    total = (trees.sort_values('year', kind='stable')
             .drop_duplicates(['plotid', 'tree_id'])
             .groupby('plotid')['ca_m2'].sum())
    total = total.where(total > 0)

    proportions = trees.groupby(['plotid', by, 'year'], sort=True)['ca_m2'].sum().reset_index()
    proportions['ca_pct'] = proportions['ca_m2'] / proportions['plotid'].map(total) * 100.0
    return proportions


def plot_event_series(trees: pd.DataFrame, settings: Optional[PlotSettings] = None) -> pd.DataFrame:
    """Yearly disturbed canopy percent per plot, zero-filled over ``settings.years``.

    Args:
        trees: Tree table
        settings: Plot settings (year range, minimum trees)

    Returns:
        DataFrame with SERIES_COLUMNS, one row per retained plot and year
    """
    settings = settings or PlotSettings()
    first, last = settings.years
    proportions = canopy_proportions(trees, by='event', min_trees=settings.min_trees)
    plots = sorted(proportions['plotid'].unique())

    disturbed = proportions[proportions['event'].isin(DISTURBANCE_EVENTS)]
    outside = disturbed[(disturbed['year'] < first) | (disturbed['year'] > last)]
    if not outside.empty:
        logger.debug(f"{len(outside)} plot-year disturbance records outside {first}-{last} ignored")

    index = pd.MultiIndex.from_product([plots, range(first, last + 1)], names=['plotid', 'year'])
    series = index.to_frame(index=False)
    if disturbed.empty:
        series['ca_pct'] = 0.0
    else:
        yearly = disturbed.groupby(['plotid', 'year'], as_index=False)['ca_pct'].sum()
        series = series.merge(yearly, on=['plotid', 'year'], how='left')
        series['ca_pct'] = series['ca_pct'].fillna(0.0)

    log_stage_summary(logger, "Plot series", trees['plotid'].nunique(), len(plots), unit="plots")
    return series[SERIES_COLUMNS]


def window_sum(values: np.ndarray, index: int, width: int) -> float:
    """Sum of a centered window of ``width`` values around ``index``, clipped at the ends."""
    half = width // 2
    lo = max(0, index - half)
    hi = min(len(values), index - half + width)
    return float(np.nansum(values[lo:hi]))


def detect_plot_peaks(series: pd.DataFrame, settings: Optional[PlotSettings] = None,
                      density: Optional[DensitySettings] = None,
                      missing_sentinel: float = MISSING_SENTINEL) -> pd.DataFrame:
    """Detect disturbance peaks in each plot's smoothed canopy series.

    Args:
        series: Plot event series (SERIES_COLUMNS)
        settings: Plot peak settings (threshold, nups, mindist, severity window)
        density: Smoothing settings
        missing_sentinel: Value substituted for missing signal values

    Returns:
        DataFrame with PEAK_COLUMNS for peaks whose severity exceeds
        ``settings.min_severity``
    """
    settings = settings or PlotSettings()
    density = density or DensitySettings()

    rows = []
    for plotid, plot in series.groupby('plotid', sort=True):
        plot = plot.sort_values('year')
        raw = plot['ca_pct'].to_numpy(dtype=float)
        years = plot['year'].to_numpy(dtype=int)
        smoothed = mds_smooth(raw, k=density.k, bw=density.bw, st=density.st)
        for i in peak_detection(smoothed, threshold=settings.threshold,
                                mindist=settings.mindist, nups=settings.nups,
                                missing=missing_sentinel):
            severity = window_sum(raw, int(i), settings.severity_window)
            if severity > settings.min_severity:
                rows.append((plotid, int(years[i]), float(smoothed[i]), severity))

    peaks = pd.DataFrame(rows, columns=PEAK_COLUMNS)
    log_stage_summary(logger, "Plot peaks", series['plotid'].nunique(), len(peaks))
    return peaks
