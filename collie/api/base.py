"""
Backend adapter interface.

Every metadata or guide provider implements one of the two capability
classes below. Adapters only translate a ROM into provider calls and map the
provider's failures onto the BackendError tree; pacing, retries and
fallback order live in RateGate and ScrapeSession.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from collie.scanner.rom_types import RomFile


@dataclass(frozen=True)
class MetadataMatch:
    """Descriptive fields a metadata backend returned for one ROM."""
    name: str
    source: str = ""
    game_id: Optional[str] = None
    description: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    players: Optional[str] = None
    rating: Optional[float] = None
    image_url: Optional[str] = None

    def formatted_rating(self) -> Optional[str]:
        """Rating as shown in the UI (one decimal)."""
        if self.rating is None:
            return None
        return f"{self.rating:.1f}"


@dataclass(frozen=True)
class GuideLink:
    """A guide document offered by a guide backend."""
    title: str
    path: str

    @property
    def filename(self) -> str:
        return self.path.rsplit('/', 1)[-1] or "guide.txt"


GuideList = List[GuideLink]


class BackendAdapter(ABC):
    """Common base for all provider adapters."""

    #: Configuration key (matches the ScrapeConfig JSON)
    key: str = "backend"
    #: Display name used in log lines and progress messages
    name: str = "Backend"
    kind: str = "metadata"

    async def aclose(self) -> None:
        """Release provider resources (connections, sockets)."""
        return None


class MetadataBackend(BackendAdapter):
    """Provider of descriptive metadata and box art."""

    kind = "metadata"

    @abstractmethod
    async def search_metadata(
        self,
        rom: RomFile,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> MetadataMatch:
        """
        Look a ROM up.

        Raises:
            NotFoundError, RateLimitedError, AuthError, NetworkError
        """

    @abstractmethod
    async def fetch_box_art(self, match: MetadataMatch, width: Optional[int] = None) -> bytes:
        """
        Download the box art referenced by a match.

        Raises:
            NotFoundError: match carries no image
            RateLimitedError, NetworkError
        """


class GuideBackend(BackendAdapter):
    """Provider of strategy guides."""

    kind = "guides"

    @abstractmethod
    async def search_guides(self, rom: RomFile) -> GuideList:
        """
        List guides available for a ROM (may be empty).

        Raises:
            NotFoundError, RateLimitedError, NetworkError
        """

    @abstractmethod
    async def fetch_guide(self, link: GuideLink) -> str:
        """Download one guide's text."""
