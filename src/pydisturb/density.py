"""
Density smoothing of yearly disturbance indicators.

``mds_smooth`` turns a sparse, spiky yearly series (canopy percent released
per year, or the share of bootstrap replicates flagging a year) into a
continuous signal: for every year, a Gaussian kernel density over the
positions of a centered window, weighted by the window's values, is
evaluated at the window center. Windows reaching past the series are filled
with zeros. Because every window has the same length, this is the
convolution of the zero-padded series with a truncated Gaussian kernel.
"""
from typing import Sequence, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from .exceptions import validate_positive

__all__ = ['window_offsets', 'mds_smooth', 'moving_average']

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def window_offsets(k: int) -> np.ndarray:
    """Offsets of a centered window of length k relative to its center.

    For even k the window extends one step further before the center than
    after it.
    """
    half = k // 2
    return np.arange(-half, k - half)


def mds_smooth(values: ArrayLike, k: int = 30, bw: float = 5.0, st: float = 7.0) -> np.ndarray:
    """Kernel-density smoothing of a yearly series.

    Args:
        values: Gap-free yearly values ordered by year (NaN counts as 0)
        k: Window length
        bw: Gaussian bandwidth in years
        st: Scaling constant; the density is multiplied by 100 / st

    Returns:
        Smoothed array of the same length as ``values``
    """
    validate_positive(k, 'k')
    validate_positive(bw, 'bw')
    validate_positive(st, 'st')

    series = np.nan_to_num(np.asarray(values, dtype=float), nan=0.0)
    n = len(series)
    if n == 0:
        return series

    offsets = window_offsets(int(k))
    kernel = norm.pdf(offsets, loc=0.0, scale=bw)
    padded = np.concatenate([
        np.zeros(-offsets[0]),
        series,
        np.zeros(offsets[-1]),
    ])
    # correlate: output[i] = sum_j padded[i + j] * kernel[j]
    smoothed = np.correlate(padded, kernel, mode='valid')
    return smoothed[:n] * 100.0 / st


def moving_average(values: ArrayLike, window: int = 5) -> np.ndarray:
    """Centered moving average allowing partial windows at both ends.

    Missing values are skipped; each output is a direct sum over its own
    window, so runs of zeros stay exactly zero.
    """
    validate_positive(window, 'window')
    series = np.asarray(values, dtype=float)
    if len(series) == 0:
        return series

    offsets = window_offsets(int(window))
    pad = (np.zeros(-offsets[0]), np.zeros(offsets[-1]))
    defined = ~np.isnan(series)
    ones = np.ones(len(offsets))
    sums = np.correlate(np.concatenate([pad[0], np.where(defined, series, 0.0), pad[1]]),
                        ones, mode='valid')
    counts = np.correlate(np.concatenate([pad[0], defined.astype(float), pad[1]]),
                          ones, mode='valid')
    with np.errstate(invalid='ignore', divide='ignore'):
        return np.where(counts > 0, sums / counts, np.nan)
