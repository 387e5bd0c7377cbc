"""
End-to-end disturbance-history reconstruction.

Runs every stage in order, each a pure transformation of the previous stage's
tables:

    ring series -> growth records -> tree events -> plot series/peaks
    -> stand peaks -> joined events -> rotation tables

Usage:
    >>> from pydisturb import DisturbanceHistory, load_settings
    >>> history = DisturbanceHistory(tables, plots, settings=load_settings())
    >>> result = history.run()
    >>> result.rotation[('severity', 'overall')]
"""
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .canopy import tree_event_table
from .event_join import join_nearest_peak
from .exceptions import MissingColumnError
from .growth_series import build_growth_series
from .logging_config import get_logger
from .parameter_table import DisturbanceParameterTable
from .plot_aggregation import detect_plot_peaks, plot_event_series
from .rotation import (
    SCALES,
    RotationEstimator,
    patch_rotation,
    proportion_rotation,
    severity_rotation,
)
from .settings import PipelineSettings
from .stand_aggregation import StandBootstrap, proportion_disturbed
from .tree_events import TreeEventClassifier

__all__ = ['PipelineResult', 'DisturbanceHistory', 'run_pipeline']

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Tables produced by one pipeline run.

    Attributes:
        growth: Growth records per core and year
        events: Tree-core events
        trees: Tree table used for plot aggregation
        plot_series: Yearly disturbed canopy percent per plot
        plot_peaks: Plot disturbance peaks with severity
        stand_frequency: Share of bootstrap replicates flagging each stand year
        stand_peaks: Stand consensus peaks
        joined: Plot peaks linked to their nearest stand peak
        proportions: Percent of plots disturbed per stand peak
        rotation: Rotation tables keyed by (unit type, scale)
    """
    growth: pd.DataFrame
    events: pd.DataFrame
    trees: pd.DataFrame
    plot_series: pd.DataFrame
    plot_peaks: pd.DataFrame
    stand_frequency: pd.DataFrame
    stand_peaks: pd.DataFrame
    joined: pd.DataFrame
    proportions: pd.DataFrame
    rotation: Dict[Tuple[str, str], pd.DataFrame] = field(default_factory=dict)

    def summary(self) -> Dict[str, int]:
        """Row counts of every table."""
        counts = {
            name: len(getattr(self, name))
            for name in ('growth', 'events', 'trees', 'plot_series', 'plot_peaks',
                         'stand_frequency', 'stand_peaks', 'joined', 'proportions')
        }
        for (unit, scale), table in self.rotation.items():
            counts[f"rotation_{unit}_{scale}"] = len(table)
        return counts


class DisturbanceHistory:
    """Configured pipeline over one batch of input tables.

    Attributes:
        tables: Mapping with exactly the core, ring and dist_param tables
        plots: Plot table (plotid, country, newstand, optional landscape)
        patches: Optional disturbance patch table for patch-size rotation
        allometry: Optional species -> canopy-area formula mapping
        settings: Pipeline settings
        parameters: Disturbance-parameter lookup built from ``tables['dist_param']``
    """

    def __init__(self, tables: Mapping[str, pd.DataFrame], plots: pd.DataFrame,
                 patches: Optional[pd.DataFrame] = None,
                 allometry: Optional[Mapping[str, str]] = None,
                 settings: Optional[PipelineSettings] = None,
                 default_class: Optional[str] = None):
        missing = {'plotid', 'country', 'newstand'} - set(plots.columns)
        if missing:
            raise MissingColumnError('plots', missing)
        self.tables = tables
        self.plots = plots
        self.patches = patches
        self.allometry = allometry
        self.settings = settings or PipelineSettings()
        self.default_class = default_class
        self.parameters: Optional[DisturbanceParameterTable] = None

    def _scales(self, scales: Sequence[str]) -> Sequence[str]:
        if 'landscape' in scales and 'landscape' not in self.plots.columns:
            logger.info("Plot table has no landscape column; skipping landscape scale")
            return [s for s in scales if s != 'landscape']
        return scales

    def rotation_tables(self, joined: pd.DataFrame, proportions: pd.DataFrame,
                        plots: pd.DataFrame,
                        scales: Sequence[str] = tuple(SCALES)) -> Dict[Tuple[str, str], pd.DataFrame]:
        """Rotation tables for every unit type and requested scale."""
        estimator = RotationEstimator.from_settings(self.settings)
        tables: Dict[Tuple[str, str], pd.DataFrame] = {}
        for scale in self._scales(scales):
            tables[('severity', scale)] = severity_rotation(joined, scale, estimator)
            tables[('proportion', scale)] = proportion_rotation(proportions, scale, estimator,
                                                                plots=plots)
            if self.patches is not None:
                tables[('patch', scale)] = patch_rotation(self.patches, scale, estimator,
                                                          plots=plots)
        return tables

    def run(self, scales: Sequence[str] = tuple(SCALES)) -> PipelineResult:
        """Run all stages.

        Args:
            scales: Rotation scales to compute ('stand', 'landscape', 'overall')

        Returns:
            PipelineResult with every intermediate and final table

        Raises:
            MissingTableError, MissingColumnError, InvalidDataError: On malformed input
            ParameterClassNotFoundError: If a core's dist_param class is unknown
        """
        s = self.settings
        logger.info(f"Reconstructing disturbance history (seed={s.seed})")

        growth = build_growth_series(self.tables, window_length=s.growth.window_length)
        self.parameters = DisturbanceParameterTable.from_frame(self.tables['dist_param'],
                                                               default_class=self.default_class)
        events = TreeEventClassifier.from_settings(self.parameters, s).classify(growth)
        trees = tree_event_table(events, self.tables['core'], growth, self.allometry)

        plot_series = plot_event_series(trees, s.plot)
        plot_peaks = detect_plot_peaks(plot_series, s.plot, s.density,
                                       missing_sentinel=s.peaks.missing_sentinel)

        retained = self.plots[self.plots['plotid'].isin(plot_series['plotid'].unique())]
        stand_frequency, stand_peaks = StandBootstrap.from_settings(s).run(plot_peaks, retained)
        joined = join_nearest_peak(plot_peaks, stand_peaks, retained,
                                   years=s.stand.historical_years)
        proportions = proportion_disturbed(joined, retained)

        rotation = self.rotation_tables(joined, proportions, retained, scales)
        result = PipelineResult(
            growth=growth,
            events=events,
            trees=trees,
            plot_series=plot_series,
            plot_peaks=plot_peaks,
            stand_frequency=stand_frequency,
            stand_peaks=stand_peaks,
            joined=joined,
            proportions=proportions,
            rotation=rotation,
        )
        logger.info(f"Pipeline finished: {result.summary()}")
        return result


def run_pipeline(tables: Mapping[str, pd.DataFrame], plots: pd.DataFrame,
                 settings: Optional[PipelineSettings] = None, **kwargs) -> PipelineResult:
    """Convenience function running DisturbanceHistory(...).run()."""
    return DisturbanceHistory(tables, plots, settings=settings, **kwargs).run()
