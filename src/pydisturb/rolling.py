"""
Rolling-window growth means.

Prior growth (pg) is the mean of the current and preceding rings, following
growth (fg) the mean of the rings after the current one. Both accept partial
windows at the series ends and ignore missing values; a window without any
defined value yields NaN.
"""
from typing import Sequence, Union

import numpy as np
import pandas as pd
from pandas.api.indexers import FixedForwardWindowIndexer

from .exceptions import validate_positive

__all__ = ['prior_growth', 'follow_growth']

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def _as_series(series: ArrayLike) -> pd.Series:
    if isinstance(series, pd.Series):
        return series.astype(float).reset_index(drop=True)
    return pd.Series(np.asarray(series, dtype=float))


def prior_growth(series: ArrayLike, window_length: int = 10) -> np.ndarray:
    """Right-aligned mean over up to ``window_length`` values ending at each position.

    Args:
        series: Ring increments ordered by year
        window_length: Number of rings in the window

    Returns:
        Array of the same length as ``series``
    """
    validate_positive(window_length, 'window_length')
    values = _as_series(series)
    return values.rolling(window=int(window_length), min_periods=1).mean().to_numpy()


def follow_growth(series: ArrayLike, window_length: int = 10) -> np.ndarray:
    """Mean over the ``window_length`` values following each position.

    Computed on the series shifted one step ahead with a left-aligned
    window, so the value at i covers positions i+1 .. i+window_length.
    The last position has no following ring and is NaN.

    Args:
        series: Ring increments ordered by year
        window_length: Number of rings in the window

    Returns:
        Array of the same length as ``series``
    """
    validate_positive(window_length, 'window_length')
    values = _as_series(series).shift(-1)
    indexer = FixedForwardWindowIndexer(window_size=int(window_length))
    return values.rolling(window=indexer, min_periods=1).mean().to_numpy()
