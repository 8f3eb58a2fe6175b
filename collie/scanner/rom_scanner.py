"""Main ROM scanner implementation."""

import logging
from pathlib import Path
from typing import Iterable, List

from collie.config.consoles import Console, ConsoleCatalog
from collie.scanner.rom_types import RomFile

logger = logging.getLogger(__name__)

# Non-ROM files commonly found next to ROMs on handhelds
SKIPPED_EXTENSIONS = {'.xml', '.miyoocmd', '.cfg', '.db', '.nfo'}
SKIPPED_NAMES = {'Imgs'}


class ScannerError(Exception):
    """ROM scanning errors."""
    pass


def scan_roms_path(
    roms_path: Path,
    consoles: ConsoleCatalog,
    extra_skipped_names: Iterable[str] = ()
) -> List[RomFile]:
    """
    Scan every recognized console folder under the ROMs path.

    Args:
        roms_path: Root folder holding one sub-folder per console
        consoles: Console definitions used to recognize folders
        extra_skipped_names: Additional entry names to ignore (artifact folders)

    Returns:
        List of RomFile objects, ordered by console folder then file name

    Raises:
        ScannerError: If the ROMs path cannot be read
    """
    roms_path = Path(roms_path)

    if not roms_path.is_dir():
        raise ScannerError(f"ROMs path is not a directory: {roms_path}")

    try:
        entries = sorted(roms_path.iterdir(), key=lambda p: p.name)
    except PermissionError:
        raise ScannerError(f"Permission denied accessing ROMs path: {roms_path}")
    except OSError as e:
        raise ScannerError(f"Failed to scan ROMs path: {e}")

    skipped = SKIPPED_NAMES | set(extra_skipped_names)
    roms = []

    for entry in entries:
        if not entry.is_dir() or entry.name.startswith('.'):
            continue

        console = consoles.find_console(entry.name)
        if console is None:
            logger.debug(f"Ignoring folder with no console match: {entry.name}")
            continue

        logger.info(f"Scanning {entry.name} ({console.name})...")
        roms.extend(scan_console_folder(entry, console, skipped))

    logger.info(f"Scan complete: {len(roms)} ROMs found in {roms_path}")
    return roms


def scan_console_folder(
    console_path: Path,
    console: Console,
    skipped_names: Iterable[str] = SKIPPED_NAMES
) -> List[RomFile]:
    """
    Scan one console folder for ROM files.

    Directories, hidden files, artifact folders and known non-ROM extensions
    are ignored.

    Args:
        console_path: Console folder
        console: Console the folder matched
        skipped_names: Entry names to ignore

    Returns:
        List of RomFile objects sorted by file name

    Raises:
        ScannerError: If the folder cannot be read
    """
    skipped_names = set(skipped_names)

    try:
        entries = sorted(console_path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise ScannerError(f"Failed to scan console folder {console_path}: {e}")

    roms = []
    for entry in entries:
        if entry.name.startswith('.') or entry.name in skipped_names:
            continue
        if entry.is_dir():
            continue
        if entry.suffix.lower() in SKIPPED_EXTENSIONS:
            continue

        try:
            file_size = entry.stat().st_size
        except OSError:
            file_size = 0

        roms.append(RomFile(
            path=entry.absolute(),
            name=entry.name,
            stem=entry.stem,
            console=console,
            file_size=file_size,
        ))

    return roms
