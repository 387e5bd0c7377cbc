"""
Configuration loader for pydisturb.
Provides unified access to the YAML and JSON files in the package cfg/ directory.

Supports:
- YAML (.yaml, .yml) - pipeline defaults, default disturbance parameters
- JSON (.json) - user supplied parameter files

Features:
- File caching (each file is parsed once per loader)
- Unified API for all configuration types
"""
import json
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml

from .exceptions import ConfigurationError, InvalidDataError

PIPELINE_DEFAULTS_FILE = 'pipeline_defaults.yaml'
DISTURBANCE_PARAMETERS_FILE = 'disturbance_parameters.yaml'


class ConfigLoader:
    """Loads and caches configuration from the cfg/ directory.

    Attributes:
        cfg_dir: Path to the configuration directory
    """

    def __init__(self, cfg_dir: Optional[Path] = None):
        """Initialize the configuration loader.

        Args:
            cfg_dir: Path to the configuration directory. Defaults to the cfg/
                directory shipped inside the package.
        """
        if cfg_dir is None:
            cfg_dir = Path(__file__).parent / 'cfg'
        self.cfg_dir = Path(cfg_dir)
        self._cache: Dict[str, Dict[str, Any]] = {}

    def _load_config_file(self, file_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file.

        Args:
            file_path: Path to the configuration file

        Returns:
            Dictionary containing configuration data

        Raises:
            ConfigurationError: If the file is missing or its format is not supported
            InvalidDataError: If the file cannot be parsed or is empty
        """
        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        suffix = file_path.suffix.lower()
        try:
            if suffix in ['.yaml', '.yml']:
                with open(file_path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
            elif suffix == '.json':
                with open(file_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {suffix}. "
                                         f"Supported formats: .yaml, .yml, .json")
        except yaml.YAMLError as e:
            raise InvalidDataError("YAML configuration", f"parsing error: {str(e)}") from e
        except json.JSONDecodeError as e:
            raise InvalidDataError("JSON configuration", f"parsing error: {str(e)}") from e

        if data is None:
            raise InvalidDataError(f"configuration file {file_path.name}",
                                   "file is empty or contains only comments")
        if not isinstance(data, dict):
            raise InvalidDataError(f"configuration file {file_path.name}",
                                   "top level must be a mapping")
        return data

    def load(self, source: Union[str, Path]) -> Dict[str, Any]:
        """Load a configuration file with caching.

        Relative names are looked up in ``cfg_dir``; absolute or existing
        paths are used as given.

        Args:
            source: File name inside cfg/ or a path

        Returns:
            Dictionary containing configuration data
        """
        path = Path(source)
        if not path.is_absolute() and not path.exists():
            path = self.cfg_dir / path
        key = str(path.resolve())
        if key not in self._cache:
            self._cache[key] = self._load_config_file(path)
        return self._cache[key]

    def load_pipeline_defaults(self) -> Dict[str, Any]:
        """Load the default stage settings."""
        return self.load(PIPELINE_DEFAULTS_FILE)

    def load_default_parameters(self) -> Dict[str, Any]:
        """Load the default disturbance-parameter classes."""
        return self.load(DISTURBANCE_PARAMETERS_FILE)

    def save_config(self, config_data: Dict[str, Any], file_path: Union[str, Path]) -> None:
        """Save configuration data to a YAML or JSON file.

        Args:
            config_data: Configuration data to save
            file_path: Path where to save the configuration
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        suffix = file_path.suffix.lower()
        if suffix in ['.yaml', '.yml']:
            with open(file_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, sort_keys=False)
        elif suffix == '.json':
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2)
        else:
            raise ConfigurationError(f"Unsupported configuration file format: {suffix}")

    def clear_cache(self) -> None:
        """Clear the file cache.

        Useful for testing or when configuration files may have changed.
        """
        self._cache.clear()


# Global configuration loader instance
_config_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Get the shared configuration loader for the packaged cfg/ directory."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def load_config_file(source: Union[str, Path]) -> Dict[str, Any]:
    """Convenience function to load a configuration file with caching."""
    return get_config_loader().load(source)
