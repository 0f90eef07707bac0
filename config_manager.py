"""
Configuration management module for the budget tracker.

This module handles loading and saving configuration values from a YAML
file, filling in defaults for anything the file leaves out.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'data_dir': 'data',
        'path': 'budgets.db',
        'connection_string': None,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': None,
    },
    'budgeting': {
        'near_limit_pct': 80,
        'recompute_end_date_on_period_change': False,
        'default_period_type': 'monthly',
    },
    'analytics': {
        'top_categories_limit': 5,
    },
}

CONFIG_FILE = 'config.yaml'


def _merge_defaults(config: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively fill keys missing from config with values from defaults."""
    merged = copy.deepcopy(defaults)
    for key, value in config.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(value, merged[key])
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (defaults to config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file exists but cannot be read or parsed
    """
    path = Path(config_path or CONFIG_FILE)
    if not path.exists():
        logger.debug(f"Config file {path} not found; using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Unable to load configuration: {e}",
            details={"config_path": str(path)},
            original_error=e
        )

    if not isinstance(config, dict):
        raise ConfigError(
            "Configuration root must be a mapping",
            details={"config_path": str(path)}
        )

    logger.info("Configuration loaded successfully")
    return _merge_defaults(config, DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], config_path: Optional[Union[str, Path]] = None) -> None:
    """
    Save configuration to a YAML file, preserving keys not present in config.

    Raises:
        ConfigError: If the file cannot be read or written
    """
    path = Path(config_path or CONFIG_FILE)
    try:
        # Read existing config to preserve other settings
        existing_config = {}
        if path.exists():
            with open(path, 'r') as f:
                existing_config = yaml.safe_load(f) or {}

        existing_config.update(config)

        with open(path, 'w') as f:
            yaml.dump(existing_config, f, default_flow_style=False)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Unable to save configuration: {e}",
            details={"config_path": str(path)},
            original_error=e
        )

    logger.info("Configuration saved successfully")
