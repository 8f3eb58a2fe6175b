"""Configuration validation."""

import logging
from pathlib import Path
from typing import Any, Dict, List

from collie.config.scrape_config import ScrapeConfig

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
BACKEND_KEYS = ['screenscraper', 'thegamesdb', 'gamefaqs']


class ValidationError(Exception):
    """Configuration validation errors."""
    pass


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Args:
        config: Configuration dictionary from loader

    Raises:
        ValidationError: If configuration is invalid
    """
    errors = []

    # Validate server section
    errors.extend(_validate_server(config.get('server', {})))

    # Validate logging section
    errors.extend(_validate_logging(config.get('logging', {})))

    # Validate scraping section
    errors.extend(_validate_scraping(config.get('scraping', {})))

    # Validate backends section
    errors.extend(_validate_backends(config.get('backends', {})))

    # Validate progress section
    errors.extend(_validate_progress(config.get('progress', {})))

    if errors:
        raise ValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )


def _validate_server(section: Dict[str, Any]) -> List[str]:
    """Validate server section."""
    errors = []

    bind = section.get('bind', '127.0.0.1')
    if not isinstance(bind, str) or not bind:
        errors.append("server.bind must be a non-empty string")

    port = section.get('port', 2435)
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        errors.append("server.port must be an integer between 1 and 65535")

    launch = section.get('launch_browser', True)
    if not isinstance(launch, bool):
        errors.append("server.launch_browser must be true or false")

    return errors


def _validate_logging(section: Dict[str, Any]) -> List[str]:
    """Validate logging section."""
    errors = []

    level = section.get('level', 'INFO')
    if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"logging.level must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    log_file = section.get('file')
    if log_file is not None and not isinstance(log_file, str):
        errors.append("logging.file must be a string path")

    return errors


def _validate_scraping(section: Dict[str, Any]) -> List[str]:
    """Validate scraping section."""
    errors = []

    workers = section.get('max_workers', 4)
    if not isinstance(workers, int) or isinstance(workers, bool) or not 1 <= workers <= 64:
        errors.append("scraping.max_workers must be an integer between 1 and 64")

    for key in ('images_folder', 'guides_folder'):
        value = section.get(key, 'x')
        if not isinstance(value, str) or not value or '/' in value or '\\' in value:
            errors.append(f"scraping.{key} must be a plain folder name")

    return errors


def _validate_backends(section: Dict[str, Any]) -> List[str]:
    """Validate per-backend pacing and retry settings."""
    errors = []

    if not isinstance(section, dict):
        return ["backends must be a dictionary"]

    for key, settings in section.items():
        if key not in BACKEND_KEYS:
            errors.append(f"backends.{key} is not a known backend")
            continue
        if not isinstance(settings, dict):
            errors.append(f"backends.{key} must be a dictionary")
            continue

        concurrent = settings.get('max_concurrent', 1)
        if not isinstance(concurrent, int) or isinstance(concurrent, bool) or concurrent < 1:
            errors.append(f"backends.{key}.max_concurrent must be a positive integer")

        attempts = settings.get('max_attempts', 3)
        if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 1:
            errors.append(f"backends.{key}.max_attempts must be a positive integer")

        for name in ('min_interval', 'initial_delay', 'max_delay'):
            value = settings.get(name, 0)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                errors.append(f"backends.{key}.{name} must be a non-negative number")

        multiplier = settings.get('multiplier', 2.0)
        if not isinstance(multiplier, (int, float)) or isinstance(multiplier, bool) or multiplier < 1:
            errors.append(f"backends.{key}.multiplier must be a number >= 1")

    return errors


def _validate_progress(section: Dict[str, Any]) -> List[str]:
    """Validate progress section."""
    errors = []

    queue_size = section.get('queue_size', 256)
    if not isinstance(queue_size, int) or isinstance(queue_size, bool) or queue_size < 1:
        errors.append("progress.queue_size must be a positive integer")

    interval = section.get('keepalive_interval', 1.0)
    if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
        errors.append("progress.keepalive_interval must be a positive number")

    return errors


def validate_scrape_config(config: ScrapeConfig) -> List[str]:
    """
    Check the preconditions for starting a scrape session.

    Args:
        config: Parsed scrape configuration

    Returns:
        List of error messages (empty when the session may start)
    """
    errors = []

    roms_path = Path(config.roms_path)
    if not roms_path.exists():
        errors.append(f"ROMs path does not exist: {roms_path}")
    elif not roms_path.is_dir():
        errors.append(f"ROMs path is not a directory: {roms_path}")

    if not config.has_backends:
        errors.append("No scraping backends enabled")

    tgdb = config.backend('thegamesdb')
    if tgdb is not None and not tgdb.credentials.get('apiKey'):
        errors.append("TheGamesDB requires an API key")

    screenscraper = config.backend('screenscraper')
    if screenscraper is not None:
        has_user = bool(screenscraper.credentials.get('username'))
        has_password = bool(screenscraper.credentials.get('password'))
        if has_user != has_password:
            errors.append("ScreenScraper needs both username and password, or neither")

    return errors
