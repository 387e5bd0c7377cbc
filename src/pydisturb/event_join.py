"""
Nearest-year association of plot events with stand peaks.

Plot detection and stand consensus rarely land on the same calendar year, so
every plot event is linked to the stand peak closest in time within its own
(country, newstand). Equidistant peaks resolve to the earlier one; events of
stands without any peak are kept with an empty ``peakid``.
"""
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import MissingColumnError
from .logging_config import get_logger, log_stage_summary
from .stand_aggregation import STAND_KEYS

__all__ = ['JOINED_COLUMNS', 'nearest_positions', 'join_nearest_peak']

logger = get_logger(__name__)

JOINED_COLUMNS = ['plotid', 'country', 'landscape', 'newstand', 'year', 'value',
                  'severity', 'stand_year', 'peakid']


def nearest_positions(sorted_years: np.ndarray, years: np.ndarray) -> np.ndarray:
    """Position of the nearest value in ``sorted_years`` for each of ``years``.

    Ties go to the earlier value. ``sorted_years`` must be non-empty and
    ascending.
    """
    right = np.searchsorted(sorted_years, years, side='left')
    right = np.clip(right, 0, len(sorted_years) - 1)
    left = np.clip(right - 1, 0, len(sorted_years) - 1)
    left_gap = np.abs(years - sorted_years[left])
    right_gap = np.abs(sorted_years[right] - years)
    return np.where(left_gap <= right_gap, left, right)


def join_nearest_peak(plot_peaks: pd.DataFrame, stand_peaks: pd.DataFrame,
                      plots: pd.DataFrame,
                      years: Optional[Tuple[int, int]] = None) -> pd.DataFrame:
    """Link every plot event to the nearest stand peak of its stand.

    Args:
        plot_peaks: Plot peaks (plotid, year, value, severity)
        stand_peaks: Stand peaks (country, newstand, year, peakid)
        plots: Plot table with plotid, country, newstand and optionally landscape
        years: Inclusive year range of plot events to keep; None keeps all

    Returns:
        DataFrame with JOINED_COLUMNS
    """
    missing = {'plotid', *STAND_KEYS} - set(plots.columns)
    if missing:
        raise MissingColumnError('plots', missing)

    plot_columns = ['plotid', *STAND_KEYS] + (['landscape'] if 'landscape' in plots.columns else [])
    events = plot_peaks.merge(plots[plot_columns].drop_duplicates('plotid'),
                              on='plotid', how='inner')
    if 'landscape' not in events.columns:
        events['landscape'] = np.nan
    if years is not None:
        events = events[events['year'].between(years[0], years[1])]

    events = events.sort_values(['plotid', 'year']).reset_index(drop=True)
    events['stand_year'] = np.nan
    events['peakid'] = None

    peaks_by_stand = {key: group.sort_values('year')
                      for key, group in stand_peaks.groupby(STAND_KEYS, sort=False)}
    for key, rows in events.groupby(STAND_KEYS, sort=False).groups.items():
        candidates = peaks_by_stand.get(key)
        if candidates is None or candidates.empty:
            continue
        peak_years = candidates['year'].to_numpy(dtype=float)
        nearest = nearest_positions(peak_years, events.loc[rows, 'year'].to_numpy(dtype=float))
        events.loc[rows, 'stand_year'] = peak_years[nearest]
        events.loc[rows, 'peakid'] = candidates['peakid'].to_numpy()[nearest]

    log_stage_summary(logger, "Joined events", len(plot_peaks), int(events['peakid'].notna().sum()))
    return events[JOINED_COLUMNS]
