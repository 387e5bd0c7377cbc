"""
Tree-level event classification.

Each core's years are labelled by two independent passes:

- Release: peaks of the abrupt-increase index ``ai = fg - pg`` above the
  class threshold ``ai_mm``, kept only when the change in growth rate is
  sustained on both sides of the candidate year.
- Gap origin: a fast-growing early life (mean increment at ages 5-15 at
  least ``gap_mm``) shows the tree established in an open canopy gap.

Releases shortly after a gap origin on the same core are discarded, and a
core without any event contributes a ``no event`` record at its first year
so it still counts towards its plot's canopy area.
"""
from typing import List, Optional

import numpy as np
import pandas as pd

from .logging_config import get_logger, log_stage_summary
from .parameter_table import DisturbanceParameterTable
from .peaks import MISSING_SENTINEL, peak_detection
from .settings import GapSettings, PipelineSettings, ReleaseSettings

__all__ = [
    'EVENT_RELEASE',
    'EVENT_GAP',
    'EVENT_NONE',
    'DISTURBANCE_EVENTS',
    'EVENT_COLUMNS',
    'TreeEventClassifier',
    'keep_release',
    'classify_events',
]

logger = get_logger(__name__)

EVENT_RELEASE = 'release'
EVENT_GAP = 'gap'
EVENT_NONE = 'no event'
DISTURBANCE_EVENTS = (EVENT_RELEASE, EVENT_GAP)

EVENT_COLUMNS = ['core_id', 'tree_id', 'year', 'event', 'age', 'dbh_mm']


def _event_rows(core: pd.DataFrame, positions, event: str) -> pd.DataFrame:
    rows = core.iloc[list(positions)][['core_id', 'tree_id', 'year', 'age', 'dbh_mm']].copy()
    rows['event'] = event
    return rows[EVENT_COLUMNS]


def _empty_events() -> pd.DataFrame:
    return pd.DataFrame(columns=EVENT_COLUMNS)


def keep_release(events: pd.DataFrame, n: int = 30) -> pd.DataFrame:
    """Discard releases that follow a gap origin on the same core within ``n`` years.

    Args:
        events: Event table with core_id, year and event columns
        n: Window after the gap year, inclusive

    Returns:
        Event table without the discarded releases, sorted by core and year
    """
    if events.empty:
        return events.copy()
    events = events.sort_values(['core_id', 'year'], kind='stable')
    gap_year = (events[events['event'] == EVENT_GAP]
                .groupby('core_id')['year'].min())
    gap_for_row = events['core_id'].map(gap_year)
    discard = (
        (events['event'] == EVENT_RELEASE)
        & gap_for_row.notna()
        & (events['year'] >= gap_for_row)
        & (events['year'] <= gap_for_row + n)
    )
    if discard.any():
        logger.debug(f"Discarded {int(discard.sum())} releases within {n} years after a gap")
    return events.loc[~discard].reset_index(drop=True)


class TreeEventClassifier:
    """Labels tree-core years as release, gap origin or no event.

    Attributes:
        parameters: Lookup of ai_mm / gap_mm thresholds by dist_param class
        release: Release detection settings
        gap: Gap-origin detection settings
        missing_sentinel: Value substituted for missing ai before peak detection
    """

    def __init__(self, parameters: DisturbanceParameterTable,
                 release: Optional[ReleaseSettings] = None,
                 gap: Optional[GapSettings] = None,
                 missing_sentinel: float = MISSING_SENTINEL):
        self.parameters = parameters
        self.release = release or ReleaseSettings()
        self.gap = gap or GapSettings()
        self.missing_sentinel = missing_sentinel

    @classmethod
    def from_settings(cls, parameters: DisturbanceParameterTable,
                      settings: PipelineSettings) -> 'TreeEventClassifier':
        return cls(parameters, release=settings.release, gap=settings.gap,
                   missing_sentinel=settings.peaks.missing_sentinel)

    def _is_sustained(self, pg: np.ndarray, fg: np.ndarray, i: int) -> bool:
        """Check the growth change at position i holds nprol years before and after.

        A side that falls outside the record, or compares undefined means,
        cannot contradict the release.
        """
        nprol = self.release.nprol
        after, before = i + nprol, i - nprol
        if after < len(fg):
            later, now = fg[after], pg[i]
            if not (np.isnan(later) or np.isnan(now)) and later <= now:
                return False
        if before >= 0:
            earlier, now = pg[before], fg[i]
            if not (np.isnan(earlier) or np.isnan(now)) and earlier >= now:
                return False
        return True

    def core_release_positions(self, core: pd.DataFrame) -> List[int]:
        """Row positions of sustained releases in one core's growth records (sorted by year)."""
        threshold = self.parameters.get(core['dist_param'].iloc[0]).ai_mm
        candidates = peak_detection(
            core['ai'].to_numpy(dtype=float),
            threshold=threshold,
            mindist=self.release.mindist,
            nups=self.release.nups,
            missing=self.missing_sentinel,
        )
        pg = core['pg'].to_numpy(dtype=float)
        fg = core['fg'].to_numpy(dtype=float)
        return [int(i) for i in candidates if self._is_sustained(pg, fg, int(i))]

    def core_gap_position(self, core: pd.DataFrame) -> Optional[int]:
        """Row position of the gap-origin year of one core, or None."""
        gap_mm = self.parameters.get(core['dist_param'].iloc[0]).gap_mm
        ages = core['age'].to_numpy()
        incr = core['incr_mm'].to_numpy(dtype=float)
        qualifying = (ages >= self.gap.min_age) & (ages <= self.gap.max_age) & ~np.isnan(incr)
        if qualifying.sum() < self.gap.min_years:
            return None
        if incr[qualifying].mean() < gap_mm:
            return None
        return int(np.flatnonzero(qualifying)[0])

    def detect_releases(self, growth: pd.DataFrame) -> pd.DataFrame:
        """Release events of all cores."""
        frames = []
        for _, core in growth.groupby('core_id', sort=True):
            core = core.sort_values('year')
            positions = self.core_release_positions(core)
            if positions:
                frames.append(_event_rows(core, positions, EVENT_RELEASE))
        return pd.concat(frames, ignore_index=True) if frames else _empty_events()

    def detect_gap_origin(self, growth: pd.DataFrame) -> pd.DataFrame:
        """Gap-origin events of all cores (at most one per core)."""
        frames = []
        for _, core in growth.groupby('core_id', sort=True):
            core = core.sort_values('year')
            position = self.core_gap_position(core)
            if position is not None:
                frames.append(_event_rows(core, [position], EVENT_GAP))
        return pd.concat(frames, ignore_index=True) if frames else _empty_events()

    def classify(self, growth: pd.DataFrame) -> pd.DataFrame:
        """Classify every core.

        Args:
            growth: Growth records (see growth_series.GROWTH_COLUMNS)

        Returns:
            Event table with EVENT_COLUMNS sorted by core_id and year
        """
        detected = [f for f in (self.detect_releases(growth), self.detect_gap_origin(growth))
                    if not f.empty]
        events = pd.concat(detected, ignore_index=True) if detected else _empty_events()
        events = keep_release(events, n=self.release.keep_release_years)

        first = growth.sort_values('year').groupby('core_id', sort=True).head(1)
        quiet = first[~first['core_id'].isin(events['core_id'])]
        if not quiet.empty:
            no_event = quiet[['core_id', 'tree_id', 'year', 'age', 'dbh_mm']].copy()
            no_event['event'] = EVENT_NONE
            events = pd.concat([events, no_event[EVENT_COLUMNS]], ignore_index=True)

        events = events.sort_values(['core_id', 'year'], kind='stable').reset_index(drop=True)
        events['year'] = events['year'].astype(int)
        log_stage_summary(logger, "Tree events", growth['core_id'].nunique(), len(events))
        return events


def classify_events(growth: pd.DataFrame, parameters: DisturbanceParameterTable,
                    settings: Optional[PipelineSettings] = None) -> pd.DataFrame:
    """Convenience function running the classifier with the given settings."""
    settings = settings or PipelineSettings()
    return TreeEventClassifier.from_settings(parameters, settings).classify(growth)
