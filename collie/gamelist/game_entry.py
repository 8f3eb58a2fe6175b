"""
Game data structures for gamelist generation.

A GameEntry is the gamelist.xml view of a stored GameRecord.
"""

import html
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from collie.workflow.game_record import GameRecord, ScrapeStatus


@dataclass
class GameEntry:
    """
    Represents a game entry for gamelist.xml.

    All text fields are stored decoded; lxml handles XML escaping when writing.
    """
    # Required fields
    path: str  # Relative path to ROM (e.g., "./Game.gba")
    name: str  # Game name

    # Optional metadata fields
    rating: Optional[str] = None
    releasedate: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    genre: Optional[str] = None

    # Paths relative to the console folder
    image: Optional[str] = None
    guides: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Decode HTML entities in text fields."""
        if self.name:
            self.name = html.unescape(self.name)
        if self.developer:
            self.developer = html.unescape(self.developer)
        if self.publisher:
            self.publisher = html.unescape(self.publisher)
        if self.genre:
            self.genre = html.unescape(self.genre)

    @classmethod
    def from_record(
        cls,
        record: GameRecord,
        console_dir: Path,
        images_folder: str = "Imgs",
        guides_folder: str = "Guides"
    ) -> Optional['GameEntry']:
        """
        Build an entry from a stored record.

        Args:
            record: Stored GameRecord
            console_dir: Console folder the gamelist belongs to
            images_folder: Box art folder name
            guides_folder: Guides folder name

        Returns:
            GameEntry, or None when the record has no metadata worth writing
        """
        meta = record.metadata
        if meta.status not in (ScrapeStatus.SUCCESS, ScrapeStatus.SKIPPED) and not meta.name:
            return None

        stem = Path(record.rom_name).stem
        image = None
        if (Path(console_dir) / images_folder / f"{stem}.png").exists():
            image = f"./{images_folder}/{stem}.png"

        guides = []
        guide_dir = Path(console_dir) / guides_folder / stem
        if guide_dir.is_dir():
            guides = [
                f"./{guides_folder}/{stem}/{guide.name}"
                for guide in sorted(guide_dir.iterdir())
                if guide.is_file()
            ]

        return cls(
            path=f"./{record.rom_name}",
            name=meta.name or stem,
            rating=meta.rating,
            releasedate=meta.release_date,
            developer=meta.developer,
            publisher=meta.publisher,
            genre=meta.genre,
            image=image,
            guides=guides,
        )
