"""Guide text storage."""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')


class GuideWriteError(Exception):
    """Guide could not be written."""
    pass


def guides_dir(console_dir: Path, stem: str, guides_folder: str = "Guides") -> Path:
    """<console_dir>/<guides_folder>/<stem>/"""
    return Path(console_dir) / guides_folder / stem


def safe_filename(name: str) -> str:
    """File name with path separators and reserved characters replaced."""
    cleaned = _UNSAFE_CHARS.sub('_', name).strip().strip('.')
    return cleaned or "guide.txt"


def save_guide(text: str, directory: Path, filename: str) -> Path:
    """
    Write one guide as UTF-8 text.

    Args:
        text: Guide contents
        directory: Guides folder of the ROM
        filename: File name offered by the backend

    Returns:
        Path of the written file

    Raises:
        GuideWriteError: If the file cannot be written
    """
    directory = Path(directory)
    target = directory / safe_filename(filename)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding='utf-8')
    except OSError as e:
        raise GuideWriteError(f"Failed to write guide {target}: {e}")

    logger.debug(f"Saved guide {target}")
    return target
