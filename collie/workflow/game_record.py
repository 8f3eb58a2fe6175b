"""
Per-ROM scrape state.

A GameRecord tracks two independent tracks for one ROM: metadata (with box
art) and guides. Each track moves pending -> searching -> terminal.
"""

import copy
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ScrapeStatus(str, Enum):
    """Status of one scrape track"""
    PENDING = "pending"
    SEARCHING = "searching"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ScrapeStatus.SUCCESS, ScrapeStatus.FAILED, ScrapeStatus.SKIPPED)


@dataclass
class MetadataRecord:
    """Metadata track of a ROM."""
    status: ScrapeStatus = ScrapeStatus.PENDING
    name: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[str] = None            # one decimal, e.g. "0.8"
    image_path: Optional[str] = None        # /api/images/<relative path>
    error_message: Optional[str] = None

    def clear_fields(self) -> None:
        """Drop everything a previous search filled in."""
        self.name = None
        self.developer = None
        self.publisher = None
        self.genre = None
        self.release_date = None
        self.rating = None
        self.image_path = None
        self.error_message = None


@dataclass
class GuideRecord:
    """Guide track of a ROM."""
    status: ScrapeStatus = ScrapeStatus.PENDING
    count: Optional[int] = None


@dataclass
class GameRecord:
    """
    Scrape state of one ROM.

    rom_name is the display name; the same file name may appear in several
    console folders, so rows are keyed by `key` (console folder + file name).
    """
    rom_name: str
    metadata: MetadataRecord = field(default_factory=MetadataRecord)
    guides: GuideRecord = field(default_factory=GuideRecord)
    console: Optional[str] = None           # console folder name

    @property
    def key(self) -> str:
        return record_key(self.console, self.rom_name)

    @classmethod
    def for_key(cls, key: str) -> 'GameRecord':
        """Fresh pending record for a store key."""
        console, sep, rom_name = key.partition('/')
        if not sep:
            return cls(rom_name=key)
        return cls(rom_name=rom_name, console=console)

    def copy(self) -> 'GameRecord':
        return copy.deepcopy(self)

    def combined_status(self) -> ScrapeStatus:
        """
        Single status shown in the game list.

        skipped wins when the cache short-circuit applied. Otherwise a terminal
        metadata result is shown; while metadata is still open, an active guide
        search shows as searching.
        """
        meta = self.metadata.status
        if meta == ScrapeStatus.SKIPPED:
            return ScrapeStatus.SKIPPED
        if meta.is_terminal:
            return meta
        if self.guides.status == ScrapeStatus.SEARCHING:
            return ScrapeStatus.SEARCHING
        return meta

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation (includes the derived status)."""
        metadata = asdict(self.metadata)
        metadata['status'] = self.metadata.status.value
        guides = asdict(self.guides)
        guides['status'] = self.guides.status.value
        data = {
            'key': self.key,
            'rom_name': self.rom_name,
            'status': self.combined_status().value,
            'metadata': metadata,
            'guides': guides,
        }
        if self.console is not None:
            data['console'] = self.console
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameRecord':
        """
        Rebuild a record from to_dict() output.

        Unknown keys are ignored and unknown statuses fall back to pending.
        """
        meta_data = dict(data.get('metadata') or {})
        guide_data = dict(data.get('guides') or {})

        metadata = MetadataRecord(
            status=_parse_status(meta_data.get('status')),
            name=meta_data.get('name'),
            developer=meta_data.get('developer'),
            publisher=meta_data.get('publisher'),
            genre=meta_data.get('genre'),
            release_date=meta_data.get('release_date'),
            rating=meta_data.get('rating'),
            image_path=meta_data.get('image_path'),
            error_message=meta_data.get('error_message'),
        )
        count = guide_data.get('count')
        guides = GuideRecord(
            status=_parse_status(guide_data.get('status')),
            count=int(count) if count is not None else None,
        )
        return cls(
            rom_name=str(data['rom_name']),
            metadata=metadata,
            guides=guides,
            console=data.get('console'),
        )


def _parse_status(value: Any) -> ScrapeStatus:
    try:
        return ScrapeStatus(value)
    except ValueError:
        return ScrapeStatus.PENDING


def record_key(console: Optional[str], rom_name: str) -> str:
    """Store key of a ROM: '<console folder>/<file name>' (bare name without a folder)."""
    return f"{console}/{rom_name}" if console else rom_name
