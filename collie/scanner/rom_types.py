"""ROM type definitions and data structures."""

from dataclasses import dataclass
from pathlib import Path

from collie.config.consoles import Console


@dataclass(frozen=True)
class RomFile:
    """
    A ROM discovered under a console folder.

    The file name is only unique within its console folder; `key` qualifies
    it with the folder name and identifies the ROM across the ROMs path.
    """
    path: Path                      # Absolute path to the ROM file (links not followed)
    name: str                       # File name (display name, gamelist.xml <path>)
    stem: str                       # File name without extension (media/guide names)
    console: Console                # Console the folder matched
    file_size: int = 0              # File size in bytes

    @property
    def console_dir(self) -> Path:
        """Folder holding this ROM."""
        return self.path.parent

    @property
    def key(self) -> str:
        """Store key: '<console folder>/<file name>'."""
        return f"{self.console_dir.name}/{self.name}"
