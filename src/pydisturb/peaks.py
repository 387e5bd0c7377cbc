"""
Local-maximum detection shared by the tree, plot and stand stages.

The same primitive runs on abrupt-increase series of single cores, on
smoothed canopy-disturbance signals of plots and on bootstrap frequency
signals of stands; only ``threshold``, ``mindist`` and ``nups`` change.
"""
from typing import Sequence, Union

import numpy as np
import pandas as pd

__all__ = ['MISSING_SENTINEL', 'peak_detection', 'rising_run_lengths']

# Value substituted for missing observations before detection.
MISSING_SENTINEL = -1.0

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def rising_run_lengths(x: np.ndarray) -> np.ndarray:
    """Number of consecutive strictly increasing steps ending at each index."""
    x = np.asarray(x)
    positions = np.arange(len(x))
    rising = np.zeros(len(x), dtype=bool)
    rising[1:] = x[1:] > x[:-1]
    # distance back to the last position that did not rise
    last_reset = np.maximum.accumulate(np.where(rising, 0, positions))
    return positions - last_reset


def _select_by_distance(indices: np.ndarray, heights: np.ndarray, mindist: int) -> np.ndarray:
    """Greedy minimum-distance selection, highest candidates first.

    Each kept peak blocks every position closer than ``mindist``; ties in
    height go to the earlier index.
    """
    if mindist <= 1 or len(indices) < 2:
        return indices
    order = np.argsort(-heights, kind='stable')
    blocked = np.zeros(indices[-1] + mindist, dtype=bool)
    keep = np.zeros(len(indices), dtype=bool)
    for pos in order:
        idx = indices[pos]
        if blocked[idx]:
            continue
        keep[pos] = True
        blocked[max(idx - mindist + 1, 0):idx + mindist] = True
    return indices[keep]


def peak_detection(x: ArrayLike, threshold: float, mindist: int, nups: int,
                   missing: float = MISSING_SENTINEL) -> np.ndarray:
    """Find peaks in a series.

    A peak at index i satisfies all of:
    - ``x[i] >= threshold``
    - ``x[i] >= x[i-1]`` and ``x[i] > x[i+1]`` (a descent must follow, so
      the last element is never a peak)
    - at least ``nups`` strictly increasing steps end at i
    - no higher peak lies closer than ``mindist`` (candidates are accepted
      from the highest down; ties go to the earlier index)

    Missing values are replaced by ``missing`` and can never be peaks
    themselves, whatever the sentinel's magnitude.

    Args:
        x: Series to search
        threshold: Minimum peak height
        mindist: Minimum distance between kept peaks
        nups: Minimum number of rising steps before a peak
        missing: Sentinel substituted for NaN

    Returns:
        Ascending array of peak indices; empty when nothing qualifies.
    """
    raw = np.asarray(x, dtype=float)
    n = len(raw)
    if n < 2:
        return np.array([], dtype=int)

    is_missing = np.isnan(raw)
    values = np.where(is_missing, missing, raw)

    candidate = np.zeros(n, dtype=bool)
    candidate[:-1] = values[:-1] > values[1:]
    candidate[1:] &= values[1:] >= values[:-1]
    candidate &= values >= threshold
    candidate &= rising_run_lengths(values) >= nups
    candidate &= ~is_missing

    indices = np.flatnonzero(candidate)
    return _select_by_distance(indices, values[indices], int(mindist))
