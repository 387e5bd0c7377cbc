"""
Typed settings for every pipeline stage.

Defaults live in ``cfg/pipeline_defaults.yaml``; ``load_settings`` merges a
user file and keyword overrides on top of them and validates the result.

Usage:
    >>> from pydisturb.settings import load_settings
    >>> settings = load_settings(overrides={'stand': {'replicates': 200}})
    >>> settings.stand.replicates
    200
"""
import copy
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .config_loader import get_config_loader, load_config_file
from .exceptions import (
    ConfigurationError,
    validate_non_negative,
    validate_positive,
    validate_range,
    validate_year_range,
)

__all__ = [
    'GrowthSettings',
    'ReleaseSettings',
    'GapSettings',
    'DensitySettings',
    'PeakSettings',
    'PlotSettings',
    'StandSettings',
    'RotationSettings',
    'PipelineSettings',
    'load_settings',
]


@dataclass(frozen=True)
class GrowthSettings:
    """Rolling window used for prior/following growth means."""
    window_length: int = 10

    def __post_init__(self):
        validate_positive(self.window_length, 'growth.window_length')


@dataclass(frozen=True)
class ReleaseSettings:
    """Release detection on the abrupt-increase series.

    Attributes:
        mindist: Minimum years between two releases of one core
        nups: Rising steps required before a release peak
        nprol: Years on each side used to confirm a sustained release
        keep_release_years: Releases this many years after a gap are discarded
    """
    mindist: int = 30
    nups: int = 1
    nprol: int = 7
    keep_release_years: int = 30

    def __post_init__(self):
        validate_positive(self.mindist, 'release.mindist')
        validate_non_negative(self.nups, 'release.nups')
        validate_non_negative(self.nprol, 'release.nprol')
        validate_non_negative(self.keep_release_years, 'release.keep_release_years')


@dataclass(frozen=True)
class GapSettings:
    """Early-life window for gap-origin detection."""
    min_age: int = 5
    max_age: int = 15
    min_years: int = 5

    def __post_init__(self):
        validate_non_negative(self.min_age, 'gap.min_age')
        validate_range(self.max_age, self.min_age, float('inf'), 'gap.max_age')
        validate_positive(self.min_years, 'gap.min_years')


@dataclass(frozen=True)
class DensitySettings:
    """Kernel smoothing used to turn event indicators into density signals.

    Attributes:
        k: Window length of the centered smoothing window
        bw: Gaussian kernel bandwidth in years
        st: Scaling constant, the output is multiplied by 100 / st
    """
    k: int = 30
    bw: float = 5.0
    st: float = 7.0

    def __post_init__(self):
        validate_positive(self.k, 'density.k')
        validate_positive(self.bw, 'density.bw')
        validate_positive(self.st, 'density.st')


@dataclass(frozen=True)
class PeakSettings:
    missing_sentinel: float = -1.0


@dataclass(frozen=True)
class PlotSettings:
    """Plot-level aggregation and peak detection."""
    min_trees: int = 5
    years: Tuple[int, int] = (1600, 2010)
    threshold: float = 10.0
    nups: int = 5
    mindist: int = 10
    severity_window: int = 11
    min_severity: float = 10.0

    def __post_init__(self):
        object.__setattr__(self, 'years', validate_year_range(tuple(self.years), 'plot.years'))
        validate_positive(self.min_trees, 'plot.min_trees')
        validate_positive(self.mindist, 'plot.mindist')
        validate_positive(self.severity_window, 'plot.severity_window')


@dataclass(frozen=True)
class StandSettings:
    """Stand-level bootstrap consensus of plot events."""
    historical_years: Tuple[int, int] = (1811, 1989)
    plots_per_replicate: int = 10
    replicates: int = 1000
    moving_average: int = 5
    threshold: float = 0.0
    nups: int = 5
    mindist: int = 10
    consensus_k: int = 11
    consensus_threshold: float = 0.0
    consensus_nups: int = 0
    consensus_mindist: int = 10

    def __post_init__(self):
        object.__setattr__(self, 'historical_years',
                           validate_year_range(tuple(self.historical_years),
                                               'stand.historical_years'))
        validate_positive(self.plots_per_replicate, 'stand.plots_per_replicate')
        validate_positive(self.replicates, 'stand.replicates')
        validate_positive(self.moving_average, 'stand.moving_average')
        validate_positive(self.consensus_k, 'stand.consensus_k')


@dataclass(frozen=True)
class RotationSettings:
    """Rotation-period estimation.

    Attributes:
        end_year: Last monitored year; record length is end_year minus the
            first observed disturbance year of each unit
        replicates: Number of bootstrap replicates
        sample_size: Units drawn per replicate (None = all units of the group)
        severity_width: Class width for severity (percent canopy)
        patch_width: Class width for patch area
        proportion_width: Class width for percent of plots disturbed
        min_stand_size: Patches of stands this size or smaller are ignored
        confidence: Lower/upper percentiles of the confidence interval
    """
    end_year: int = 1990
    replicates: int = 1000
    sample_size: Optional[int] = None
    severity_width: float = 5.0
    patch_width: float = 1.0
    proportion_width: float = 10.0
    min_stand_size: float = 20.0
    confidence: Tuple[float, float] = (2.5, 97.5)

    def __post_init__(self):
        validate_positive(self.replicates, 'rotation.replicates')
        if self.sample_size is not None:
            validate_positive(self.sample_size, 'rotation.sample_size')
        validate_positive(self.severity_width, 'rotation.severity_width')
        validate_positive(self.patch_width, 'rotation.patch_width')
        validate_positive(self.proportion_width, 'rotation.proportion_width')
        lower, upper = (float(c) for c in self.confidence)
        validate_range(lower, 0.0, upper, 'rotation.confidence')
        validate_range(upper, lower, 100.0, 'rotation.confidence')
        object.__setattr__(self, 'confidence', (lower, upper))


_SECTIONS = {
    'growth': GrowthSettings,
    'release': ReleaseSettings,
    'gap': GapSettings,
    'density': DensitySettings,
    'peaks': PeakSettings,
    'plot': PlotSettings,
    'stand': StandSettings,
    'rotation': RotationSettings,
}


@dataclass(frozen=True)
class PipelineSettings:
    """All stage settings plus the global resampling seed."""
    seed: int = 42
    growth: GrowthSettings = field(default_factory=GrowthSettings)
    release: ReleaseSettings = field(default_factory=ReleaseSettings)
    gap: GapSettings = field(default_factory=GapSettings)
    density: DensitySettings = field(default_factory=DensitySettings)
    peaks: PeakSettings = field(default_factory=PeakSettings)
    plot: PlotSettings = field(default_factory=PlotSettings)
    stand: StandSettings = field(default_factory=StandSettings)
    rotation: RotationSettings = field(default_factory=RotationSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineSettings':
        """Build settings from a nested mapping.

        Raises:
            ConfigurationError: On unknown sections or keys
        """
        unknown = set(data) - set(_SECTIONS) - {'seed'}
        if unknown:
            raise ConfigurationError(f"Unknown settings sections: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        if data.get('seed') is not None:
            kwargs['seed'] = int(data['seed'])
        for name, section_cls in _SECTIONS.items():
            section = data.get(name) or {}
            allowed = {f.name for f in fields(section_cls)}
            bad = set(section) - allowed
            if bad:
                raise ConfigurationError(
                    f"Unknown keys in settings section '{name}': {sorted(bad)}. "
                    f"Allowed keys: {sorted(allowed)}"
                )
            kwargs[name] = section_cls(**section)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_settings(source: Optional[Union[str, Path]] = None,
                  overrides: Optional[Dict[str, Any]] = None) -> PipelineSettings:
    """Load pipeline settings.

    Args:
        source: Optional YAML/JSON file whose values replace the packaged defaults
        overrides: Optional nested mapping applied last

    Returns:
        Validated PipelineSettings
    """
    data = get_config_loader().load_pipeline_defaults()
    if source is not None:
        data = _deep_merge(data, load_config_file(source))
    if overrides:
        data = _deep_merge(data, overrides)
    return PipelineSettings.from_dict(data)
