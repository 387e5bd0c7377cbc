"""
Rotation-period estimation.

The rotation period of disturbances of at least class C is the total
monitored time divided by the number of events of class C or higher:

    rotation(C) = sum(end_year - first_year(unit)) / count(events with class >= C)

where ``first_year`` of a sampling unit is its first observed disturbance
year. Confidence intervals come from bootstrapping the sampling units (plots
for severity, stands for patch size and proportion disturbed), each replicate
drawing from its own seeded generator.
"""
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import InvalidParameterError, MissingColumnError
from .logging_config import get_logger, log_stage_summary
from .resampling import replicate_generators, resample_indices
from .settings import PipelineSettings, RotationSettings

__all__ = [
    'SCALES',
    'ROTATION_COLUMNS',
    'bin_classes',
    'reverse_cumulative_counts',
    'RotationEstimator',
    'severity_rotation',
    'patch_rotation',
    'proportion_rotation',
]

logger = get_logger(__name__)

SCALES: Dict[str, Tuple[str, ...]] = {
    'stand': ('country', 'newstand'),
    'landscape': ('country', 'landscape'),
    'overall': (),
}

ROTATION_COLUMNS = ['class', 'n_events', 'record_length', 'rotation', 'lower', 'upper']


def bin_classes(values, width: float) -> np.ndarray:
    """Round values down to the nearest multiple of ``width``."""
    return np.floor(np.asarray(values, dtype=float) / width) * width


def reverse_cumulative_counts(counts: np.ndarray) -> np.ndarray:
    """Cumulative counts from the highest class down (last axis is the class axis)."""
    return np.flip(np.cumsum(np.flip(counts, axis=-1), axis=-1), axis=-1)


def _rotation(record_length, cumulative) -> np.ndarray:
    cumulative = np.asarray(cumulative, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        rotation = np.asarray(record_length, dtype=float)[..., None] / cumulative
    return np.where(cumulative > 0, rotation, np.nan)


def _nan_percentiles(samples: np.ndarray, q: Sequence[float]) -> np.ndarray:
    """Percentiles of each column ignoring NaN; all-NaN columns give NaN."""
    result = np.full((len(q), samples.shape[1]), np.nan)
    defined = ~np.isnan(samples).all(axis=0)
    if defined.any():
        result[:, defined] = np.nanpercentile(samples[:, defined], q, axis=0)
    return result


class RotationEstimator:
    """Reverse-cumulative rotation periods with bootstrap confidence intervals.

    Attributes:
        settings: Rotation settings (end year, replicates, sample size, percentiles)
        seed: Global seed for the replicate generators
    """

    def __init__(self, settings: Optional[RotationSettings] = None, seed: int = 42):
        self.settings = settings or RotationSettings()
        self.seed = seed

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> 'RotationEstimator':
        return cls(settings.rotation, seed=settings.seed)

    def unit_table(self, events: pd.DataFrame, unit_cols: Sequence[str], value_col: str,
                   class_width: float, year_col: str = 'year',
                   units: Optional[pd.DataFrame] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Per-unit record lengths and reverse-cumulative class counts.

        Args:
            events: Events of one group
            unit_cols: Columns identifying a sampling unit
            value_col: Column binned into classes
            class_width: Class width
            year_col: Event year column
            units: Optional table of units with a ``first_year`` column; units
                listed there without events still add record length

        Returns:
            Tuple of (class grid, record length per unit, cumulative count matrix
            with one row per unit and one column per class)
        """
        unit_cols = list(unit_cols)
        events = events.dropna(subset=[value_col, year_col])
        classes = bin_classes(events[value_col], class_width)
        grid = np.unique(classes)

        first_year = events.groupby(unit_cols)[year_col].min()
        if units is not None:
            if 'first_year' not in units.columns:
                raise MissingColumnError('units', {'first_year'})
            given = units.set_index(unit_cols)['first_year']
            first_year = given.combine_first(first_year)
        first_year = first_year.sort_index()
        lengths = np.clip(self.settings.end_year - first_year.to_numpy(dtype=float), 0, None)

        position = pd.Series(np.arange(len(first_year)), index=first_year.index)
        keys = pd.MultiIndex.from_frame(events[unit_cols]) if len(unit_cols) > 1 \
            else pd.Index(events[unit_cols[0]])
        rows = position.reindex(keys).to_numpy()
        cols = np.searchsorted(grid, classes)

        counts = np.zeros((len(first_year), len(grid)))
        np.add.at(counts, (rows.astype(int), cols), 1)
        return grid, lengths, reverse_cumulative_counts(counts)

    def replicate_rotations(self, lengths: np.ndarray, cumulative: np.ndarray,
                            key=()) -> np.ndarray:
        """Rotation periods of every bootstrap replicate (replicates x classes)."""
        n_units = len(lengths)
        size = self.settings.sample_size or n_units
        rotations = np.full((self.settings.replicates, cumulative.shape[1]), np.nan)
        if n_units == 0:
            return rotations
        for rep, rng in enumerate(replicate_generators(self.seed, self.settings.replicates, key)):
            drawn = resample_indices(rng, n_units, size)
            rotations[rep] = _rotation(lengths[drawn].sum(), cumulative[drawn].sum(axis=0))
        return rotations

    def estimate(self, events: pd.DataFrame, unit_cols: Sequence[str], value_col: str,
                 class_width: float, group_cols: Sequence[str] = (), year_col: str = 'year',
                 units: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """Point estimate and bootstrap interval of the rotation period per class.

        Args:
            events: Event table
            unit_cols: Columns identifying a sampling unit
            value_col: Column binned into classes (severity, patch area, proportion)
            class_width: Class width
            group_cols: Columns defining independent estimation groups (scale)
            year_col: Event year column
            units: Optional units table with ``first_year`` (and group columns)

        Returns:
            DataFrame with the group columns followed by ROTATION_COLUMNS
        """
        group_cols = list(group_cols)
        needed = set(unit_cols) | set(group_cols) | {value_col, year_col}
        missing = needed - set(events.columns)
        if missing:
            raise MissingColumnError('events', missing)
        if class_width <= 0:
            raise InvalidParameterError('class_width', class_width, "must be positive")

        lower_q, upper_q = self.settings.confidence
        groups = events.groupby(group_cols, sort=True) if group_cols else [((), events)]
        frames = []
        for key, group in groups:
            key = key if isinstance(key, tuple) else (key,)
            group_units = units
            if units is not None and group_cols and set(group_cols) <= set(units.columns):
                mask = np.logical_and.reduce([units[c] == v for c, v in zip(group_cols, key)])
                group_units = units[mask]

            grid, lengths, cumulative = self.unit_table(group, unit_cols, value_col, class_width,
                                                        year_col=year_col, units=group_units)
            if len(grid) == 0:
                continue
            point = _rotation(lengths.sum(), cumulative.sum(axis=0))
            replicates = self.replicate_rotations(lengths, cumulative,
                                                  key=(value_col,) + tuple(key))
            lower, upper = _nan_percentiles(replicates, [lower_q, upper_q])

            frame = pd.DataFrame({
                'class': grid,
                'n_events': cumulative.sum(axis=0).astype(int),
                'record_length': lengths.sum(),
                'rotation': point,
                'lower': lower,
                'upper': upper,
            })
            for col, value in zip(group_cols, key):
                frame.insert(group_cols.index(col), col, value)
            frames.append(frame)

        if not frames:
            return pd.DataFrame(columns=group_cols + ROTATION_COLUMNS)
        result = pd.concat(frames, ignore_index=True)
        log_stage_summary(logger, f"Rotation ({value_col})", len(events), len(result))
        return result


def _scale_columns(scale: str) -> Tuple[str, ...]:
    if scale not in SCALES:
        raise InvalidParameterError('scale', scale, f"must be one of {list(SCALES)}")
    return SCALES[scale]


def _with_landscape(frame: pd.DataFrame, plots: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Attach landscape (and country) from the plot table by newstand."""
    if 'landscape' in frame.columns and 'country' in frame.columns:
        return frame
    if plots is None:
        raise MissingColumnError('events', {'country', 'landscape'} - set(frame.columns))
    keys = ['country', 'newstand'] if 'country' in frame.columns else ['newstand']
    wanted = [c for c in ('country', 'landscape') if c not in frame.columns]
    lookup = plots[keys + wanted].drop_duplicates(keys)
    return frame.merge(lookup, on=keys, how='left')


def severity_rotation(joined: pd.DataFrame, scale: str = 'overall',
                      estimator: Optional[RotationEstimator] = None) -> pd.DataFrame:
    """Rotation period by severity class, resampling plots.

    Args:
        joined: Joined events (plotid, country, landscape, newstand, year, severity)
        scale: 'stand', 'landscape' or 'overall'
        estimator: Estimator to use (default settings when None)
    """
    estimator = estimator or RotationEstimator()
    return estimator.estimate(joined, unit_cols=['plotid'], value_col='severity',
                              class_width=estimator.settings.severity_width,
                              group_cols=_scale_columns(scale))


def patch_rotation(patches: pd.DataFrame, scale: str = 'overall',
                   estimator: Optional[RotationEstimator] = None,
                   plots: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """Rotation period by patch-size class, resampling stands.

    Args:
        patches: Disturbance patches (newstand, peakyear, patch_area, optional
            country, landscape, stand_size)
        scale: 'stand', 'landscape' or 'overall'
        estimator: Estimator to use (default settings when None)
        plots: Plot table used to look up country/landscape of each stand
    """
    estimator = estimator or RotationEstimator()
    missing = {'newstand', 'peakyear', 'patch_area'} - set(patches.columns)
    if missing:
        raise MissingColumnError('patches', missing)
    if 'stand_size' in patches.columns:
        patches = patches[patches['stand_size'] > estimator.settings.min_stand_size]
    group_cols = _scale_columns(scale)
    if group_cols:
        patches = _with_landscape(patches, plots)
    unit_cols = ['country', 'newstand'] if 'country' in patches.columns else ['newstand']
    return estimator.estimate(patches, unit_cols=unit_cols, value_col='patch_area',
                              class_width=estimator.settings.patch_width,
                              group_cols=group_cols, year_col='peakyear')


def proportion_rotation(proportions: pd.DataFrame, scale: str = 'overall',
                        estimator: Optional[RotationEstimator] = None,
                        plots: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """Rotation period by percent-of-plots-disturbed class, resampling stands.

    Args:
        proportions: Output of stand_aggregation.proportion_disturbed
        scale: 'stand', 'landscape' or 'overall'
        estimator: Estimator to use (default settings when None)
        plots: Plot table used to look up the landscape of each stand
    """
    estimator = estimator or RotationEstimator()
    group_cols = _scale_columns(scale)
    if 'landscape' in group_cols:
        proportions = _with_landscape(proportions, plots)
    return estimator.estimate(proportions, unit_cols=['country', 'newstand'],
                              value_col='proportion',
                              class_width=estimator.settings.proportion_width,
                              group_cols=group_cols)
