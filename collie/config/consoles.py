"""Console folder definitions."""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

BUNDLED_CONSOLES = Path(__file__).with_name("consoles.yaml")


@dataclass(frozen=True)
class Console:
    """A console whose ROM folder can be scraped."""
    name: str
    patterns: Tuple[str, ...] = ()
    screenscraper_id: Optional[int] = None
    thegamesdb_id: Optional[int] = None
    gamefaqs_archive_id: Optional[str] = None

    def matches(self, folder_name: str) -> bool:
        """Check whether a folder name matches one of the patterns (case-insensitive)."""
        folder = folder_name.casefold()
        return any(folder == pattern.casefold() for pattern in self.patterns)


class ConsolesError(Exception):
    """Console definition loading errors."""
    pass


class ConsoleCatalog:
    """Ordered collection of console definitions."""

    def __init__(self, consoles: List[Console]):
        self.consoles = list(consoles)

    def __len__(self) -> int:
        return len(self.consoles)

    def __iter__(self):
        return iter(self.consoles)

    def find_console(self, folder_name: str) -> Optional[Console]:
        """
        Find the console for a folder name.

        Args:
            folder_name: Name of a folder directly under the ROMs path

        Returns:
            First matching Console, or None
        """
        for console in self.consoles:
            if console.matches(folder_name):
                return console
        return None

    def all_patterns(self) -> List[str]:
        return [pattern for console in self.consoles for pattern in console.patterns]


def load_consoles(path: Optional[Path] = None) -> ConsoleCatalog:
    """
    Load console definitions from YAML.

    Args:
        path: consoles.yaml to read (default: the bundled file)

    Returns:
        ConsoleCatalog

    Raises:
        ConsolesError: If the file cannot be read or is malformed
    """
    path = Path(path) if path is not None else BUNDLED_CONSOLES

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConsolesError(f"Invalid YAML in {path}: {e}")
    except OSError as e:
        raise ConsolesError(f"Failed to read {path}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get('consoles'), list):
        raise ConsolesError(f"{path} must contain a 'consoles' list")

    consoles = []
    for index, entry in enumerate(data['consoles']):
        if not isinstance(entry, dict) or not entry.get('name'):
            raise ConsolesError(f"Console #{index + 1} in {path} has no name")
        archive_id = entry.get('gamefaqs_archive_id')
        consoles.append(Console(
            name=str(entry['name']),
            patterns=tuple(str(p) for p in entry.get("patterns") or []),
            screenscraper_id=_optional_int(entry.get('screenscraper_id')),
            thegamesdb_id=_optional_int(entry.get('thegamesdb_id')),
            gamefaqs_archive_id=str(archive_id) if archive_id is not None else None,
        ))

    return ConsoleCatalog(consoles)


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConsolesError(f"Invalid provider id: {value!r}")
