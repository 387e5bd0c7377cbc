"""
pydisturb: Canopy disturbance history from tree-ring series

Reconstructs forest canopy disturbance histories from dated tree-ring
increments: release and gap-origin events per tree, smoothed disturbance
signals per plot and stand, and rotation periods with bootstrap confidence
intervals.

Quick Start:
    >>> from pydisturb import DisturbanceHistory, load_settings
    >>> tables = {'core': core, 'ring': ring, 'dist_param': dist_param}
    >>> result = DisturbanceHistory(tables, plots, settings=load_settings()).run()
    >>> print(result.rotation[('severity', 'overall')])
"""

# =============================================================================
# Package Metadata
# =============================================================================
__version__ = "0.1.0"
__author__ = "pydisturb Development Team"

# =============================================================================
# Pipeline - Primary API
# =============================================================================
from .pipeline import DisturbanceHistory, PipelineResult, run_pipeline

# =============================================================================
# Signal Primitives
# =============================================================================
from .rolling import prior_growth, follow_growth
from .peaks import peak_detection, MISSING_SENTINEL
from .density import mds_smooth, moving_average

# =============================================================================
# Tree Level
# =============================================================================
from .parameter_table import DisturbanceParameter, DisturbanceParameterTable
from .growth_series import build_growth_series, validate_tables
from .tree_events import (
    TreeEventClassifier,
    classify_events,
    keep_release,
    EVENT_RELEASE,
    EVENT_GAP,
    EVENT_NONE,
)

# =============================================================================
# Plot and Stand Aggregation
# =============================================================================
from .canopy import canopy_area, tree_event_table
from .plot_aggregation import canopy_proportions, plot_event_series, detect_plot_peaks
from .stand_aggregation import StandBootstrap, bootstrap_stand_peaks, proportion_disturbed
from .event_join import join_nearest_peak

# =============================================================================
# Rotation Periods
# =============================================================================
from .rotation import (
    RotationEstimator,
    severity_rotation,
    patch_rotation,
    proportion_rotation,
)

# =============================================================================
# Configuration
# =============================================================================
from .config_loader import get_config_loader, load_config_file
from .settings import PipelineSettings, load_settings

# =============================================================================
# Logging
# =============================================================================
from .logging_config import setup_logging, get_logger

# =============================================================================
# Exceptions
# =============================================================================
from .exceptions import (
    DisturbanceError,
    ConfigurationError,
    ParameterError,
    InvalidParameterError,
    ParameterClassNotFoundError,
    DataError,
    MissingTableError,
    MissingColumnError,
    InvalidDataError,
)

__all__ = [
    # Metadata
    '__version__',
    # Pipeline
    'DisturbanceHistory',
    'PipelineResult',
    'run_pipeline',
    # Signal primitives
    'prior_growth',
    'follow_growth',
    'peak_detection',
    'MISSING_SENTINEL',
    'mds_smooth',
    'moving_average',
    # Tree level
    'DisturbanceParameter',
    'DisturbanceParameterTable',
    'build_growth_series',
    'validate_tables',
    'TreeEventClassifier',
    'classify_events',
    'keep_release',
    'EVENT_RELEASE',
    'EVENT_GAP',
    'EVENT_NONE',
    # Aggregation
    'canopy_area',
    'tree_event_table',
    'canopy_proportions',
    'plot_event_series',
    'detect_plot_peaks',
    'StandBootstrap',
    'bootstrap_stand_peaks',
    'proportion_disturbed',
    'join_nearest_peak',
    # Rotation
    'RotationEstimator',
    'severity_rotation',
    'patch_rotation',
    'proportion_rotation',
    # Configuration
    'get_config_loader',
    'load_config_file',
    'PipelineSettings',
    'load_settings',
    # Logging
    'setup_logging',
    'get_logger',
    # Exceptions
    'DisturbanceError',
    'ConfigurationError',
    'ParameterError',
    'InvalidParameterError',
    'ParameterClassNotFoundError',
    'DataError',
    'MissingTableError',
    'MissingColumnError',
    'InvalidDataError',
]
