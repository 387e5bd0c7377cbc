"""
Stand-level consensus of plot disturbance events.

Plot peaks are noisy and plot specific. To find disturbance episodes shared
by a stand, plots are bootstrapped: each replicate draws plots with
replacement, turns their event years into a yearly event frequency, smooths
it and detects peaks. The share of replicates flagging each year is smoothed
again and searched for peaks a second time; only years recurring across
replicates survive as stand peaks.
"""
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .density import mds_smooth, moving_average
from .exceptions import MissingColumnError
from .logging_config import get_logger, log_exclusion, log_stage_summary
from .peaks import MISSING_SENTINEL, peak_detection
from .resampling import map_replicates, resample_indices
from .settings import DensitySettings, PipelineSettings, StandSettings

__all__ = [
    'STAND_KEYS',
    'REPLICATE_COLUMNS',
    'STAND_PEAK_COLUMNS',
    'make_peakid',
    'StandBootstrap',
    'bootstrap_stand_peaks',
    'proportion_disturbed',
]

logger = get_logger(__name__)

STAND_KEYS = ['country', 'newstand']
REPLICATE_COLUMNS = ['country', 'newstand', 'rep', 'year']
STAND_PEAK_COLUMNS = ['country', 'newstand', 'year', 'value', 'frequency', 'peakid']


def make_peakid(country, newstand, year) -> str:
    return f"{country}-{newstand}-{int(year)}"


def _check_plots(plots: pd.DataFrame) -> None:
    missing = {'plotid', *STAND_KEYS} - set(plots.columns)
    if missing:
        raise MissingColumnError('plots', missing)


class StandBootstrap:
    """Bootstrap consensus of plot peaks within each (country, newstand).

    Attributes:
        settings: Stand settings (year range, replicate count, detection parameters)
        density: Smoothing settings shared with the plot stage
        seed: Global seed for the replicate generators
        missing_sentinel: Value substituted for missing signal values
    """

    def __init__(self, settings: Optional[StandSettings] = None,
                 density: Optional[DensitySettings] = None,
                 seed: int = 42, missing_sentinel: float = MISSING_SENTINEL):
        self.settings = settings or StandSettings()
        self.density = density or DensitySettings()
        self.seed = seed
        self.missing_sentinel = missing_sentinel

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> 'StandBootstrap':
        return cls(settings.stand, settings.density, seed=settings.seed,
                   missing_sentinel=settings.peaks.missing_sentinel)

    @property
    def years(self) -> np.ndarray:
        first, last = self.settings.historical_years
        return np.arange(first, last + 1)

    def _event_matrix(self, plot_ids: List, plot_peaks: pd.DataFrame) -> np.ndarray:
        """Events per plot (rows) and historical year (columns)."""
        years = self.years
        matrix = np.zeros((len(plot_ids), len(years)))
        position = {plotid: i for i, plotid in enumerate(plot_ids)}
        inside = plot_peaks[plot_peaks['plotid'].isin(position)
                            & plot_peaks['year'].between(years[0], years[-1])]
        for plotid, year in zip(inside['plotid'], inside['year']):
            matrix[position[plotid], int(year) - years[0]] += 1
        return matrix

    def replicate_signal(self, frequency: np.ndarray) -> np.ndarray:
        """Smoothed signal of one replicate's yearly event frequency."""
        smoothed = mds_smooth(frequency, k=self.density.k, bw=self.density.bw, st=self.density.st)
        return moving_average(smoothed, window=self.settings.moving_average)

    def stand_replicates(self, key: Tuple, matrix: np.ndarray) -> List[np.ndarray]:
        """Peak years of every replicate of one stand, as positions in ``years``."""
        s = self.settings

        def replicate(rep: int, rng: np.random.Generator) -> np.ndarray:
            drawn = resample_indices(rng, matrix.shape[0], s.plots_per_replicate)
            frequency = matrix[drawn].sum(axis=0) / s.plots_per_replicate
            return peak_detection(self.replicate_signal(frequency),
                                  threshold=s.threshold, mindist=s.mindist,
                                  nups=s.nups, missing=self.missing_sentinel)

        return map_replicates(replicate, self.seed, s.replicates, key)

    def replicate_peaks(self, plot_peaks: pd.DataFrame, plots: pd.DataFrame) -> pd.DataFrame:
        """Peak years of every bootstrap replicate of every stand.

        Args:
            plot_peaks: Plot peaks (plotid, year, ...)
            plots: Plots retained by the plot stage, with plotid, country, newstand

        Returns:
            DataFrame with country, newstand, rep, year; one row per replicate peak
        """
        _check_plots(plots)
        years = self.years
        rows = []
        for key, stand in plots.groupby(STAND_KEYS, sort=True):
            plot_ids = sorted(stand['plotid'].unique())
            matrix = self._event_matrix(plot_ids, plot_peaks)
            for rep, positions in enumerate(self.stand_replicates(key, matrix)):
                rows.extend((key[0], key[1], rep, int(years[i])) for i in positions)
        return pd.DataFrame(rows, columns=REPLICATE_COLUMNS)

    def peak_frequency(self, plot_peaks: pd.DataFrame, plots: pd.DataFrame) -> pd.DataFrame:
        """Share of bootstrap replicates flagging each (stand, year).

        Returns:
            DataFrame with country, newstand, year, frequency over the
            historical years of every stand that has plots
        """
        replicates = self.replicate_peaks(plot_peaks, plots)
        stands = plots[STAND_KEYS].drop_duplicates().sort_values(STAND_KEYS)
        if stands.empty:
            return pd.DataFrame(columns=['country', 'newstand', 'year', 'frequency'])

        grid = stands.merge(pd.DataFrame({'year': self.years}), how='cross')
        if replicates.empty:
            grid['frequency'] = 0.0
            return grid.reset_index(drop=True)
        flagged = (replicates.groupby(STAND_KEYS + ['year']).size()
                   .rename('frequency').reset_index())
        frequency = grid.merge(flagged, on=STAND_KEYS + ['year'], how='left')
        frequency['frequency'] = frequency['frequency'].fillna(0) / self.settings.replicates
        return frequency.reset_index(drop=True)

    def detect_stand_peaks(self, frequency: pd.DataFrame) -> pd.DataFrame:
        """Consensus peaks of the replicate frequency of each stand.

        Returns:
            DataFrame with STAND_PEAK_COLUMNS
        """
        s = self.settings
        rows = []
        for (country, newstand), stand in frequency.groupby(STAND_KEYS, sort=True):
            stand = stand.sort_values('year')
            share = stand['frequency'].to_numpy(dtype=float)
            years = stand['year'].to_numpy(dtype=int)
            smoothed = mds_smooth(share, k=s.consensus_k, bw=self.density.bw, st=self.density.st)
            for i in peak_detection(smoothed, threshold=s.consensus_threshold,
                                    mindist=s.consensus_mindist, nups=s.consensus_nups,
                                    missing=self.missing_sentinel):
                rows.append((country, newstand, int(years[i]), float(smoothed[i]),
                             float(share[i]), make_peakid(country, newstand, years[i])))
        return pd.DataFrame(rows, columns=STAND_PEAK_COLUMNS)

    def run(self, plot_peaks: pd.DataFrame, plots: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Bootstrap frequencies and stand peaks.

        Returns:
            Tuple of (frequency table, stand peak table)
        """
        frequency = self.peak_frequency(plot_peaks, plots)
        stand_peaks = self.detect_stand_peaks(frequency)
        log_stage_summary(logger, "Stand peaks", plots.groupby(STAND_KEYS).ngroups,
                          len(stand_peaks))
        return frequency, stand_peaks


def proportion_disturbed(joined: pd.DataFrame, plots: pd.DataFrame) -> pd.DataFrame:
    """Percent of a stand's plots sharing each stand peak.

    Args:
        joined: Joined events (plot events with their stand peakid)
        plots: Plots retained by the plot stage

    Returns:
        DataFrame with country, newstand, year, peakid, n_plots, proportion
    """
    _check_plots(plots)
    plot_counts: Dict = plots.groupby(STAND_KEYS)['plotid'].nunique().to_dict()
    linked = joined.dropna(subset=['peakid'])
    unmatched = joined.loc[joined['peakid'].isna(), 'plotid'].unique()
    log_exclusion(logger, "plot events", unmatched, "no stand peak in the stand")
    if linked.empty:
        return pd.DataFrame(columns=['country', 'newstand', 'year', 'peakid', 'n_plots', 'proportion'])

    shares = (linked.groupby(STAND_KEYS + ['stand_year', 'peakid'], sort=True)['plotid']
              .nunique().rename('n_plots').reset_index()
              .rename(columns={'stand_year': 'year'}))
    totals = [plot_counts[(c, s)] for c, s in zip(shares['country'], shares['newstand'])]
    shares['proportion'] = shares['n_plots'] / np.asarray(totals, dtype=float) * 100.0
    shares['year'] = shares['year'].astype(int)
    return shares


def bootstrap_stand_peaks(plot_peaks: pd.DataFrame, plots: pd.DataFrame,
                          settings: Optional[PipelineSettings] = None) -> pd.DataFrame:
    """Replicate peak years of every stand (see StandBootstrap.replicate_peaks)."""
    settings = settings or PipelineSettings()
    return StandBootstrap.from_settings(settings).replicate_peaks(plot_peaks, plots)
