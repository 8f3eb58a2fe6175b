"""Configuration loading and parsing."""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "collie.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    'server': {
        'bind': '127.0.0.1',
        'port': 2435,
        'launch_browser': True,
    },
    'logging': {
        'level': 'INFO',
        'file': None,
    },
    'scraping': {
        'max_workers': 4,
        'images_folder': 'Imgs',
        'guides_folder': 'Guides',
    },
    'backends': {
        'screenscraper': {
            'max_concurrent': 1,
            'min_interval': 1.2,
            'max_attempts': 3,
            'initial_delay': 1.0,
            'multiplier': 2.0,
            'max_delay': 300.0,
        },
        'thegamesdb': {
            'max_concurrent': 2,
            'min_interval': 1.0,
            'max_attempts': 3,
            'initial_delay': 1.0,
            'multiplier': 2.0,
            'max_delay': 300.0,
        },
        'gamefaqs': {
            'max_concurrent': 1,
            'min_interval': 0.5,
            'max_attempts': 3,
            'initial_delay': 1.0,
            'multiplier': 2.0,
            'max_delay': 300.0,
        },
    },
    'progress': {
        'queue_size': 256,
        'keepalive_interval': 1.0,
    },
}


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration and merge it over the defaults.

    Args:
        config_path: Path to a YAML file. If None, ./collie.yaml is used when
            present, otherwise the defaults alone.

    Returns:
        Parsed configuration dictionary

    Raises:
        ConfigError: If an explicit config file is missing, or a file cannot
            be loaded or parsed
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME
        if not config_path.exists():
            logger.debug(f"No {CONFIG_FILENAME} in {Path.cwd()}, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")
    except Exception as e:
        raise ConfigError(f"Failed to read config file: {e}")

    if user_config is None:
        user_config = {}

    if not isinstance(user_config, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    logger.debug(f"Loaded configuration from {config_path}")
    return merge_dicts(DEFAULT_CONFIG, user_config)


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge override into a copy of base.

    Args:
        base: Base dictionary (not modified)
        override: Values that win over base

    Returns:
        New merged dictionary
    """
    result: Dict[str, Any] = copy.deepcopy(base)
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., 'backends.screenscraper.min_interval')
        default: Default value if path not found

    Returns:
        Configuration value or default

    Example:
        >>> get_config_value(config, 'server.port')
        2435
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value
