"""GameFAQs archive guide backend (gopher)."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from collie.api.base import GuideBackend, GuideLink, GuideList
from collie.api.error_handler import NetworkError, NotFoundError
from collie.scanner.rom_types import RomFile

logger = logging.getLogger(__name__)

DEFAULT_HOST = "gopher.endangeredsoft.org"
DEFAULT_PORT = 70
ARCHIVE_ROOT = "/gamefaqs-archive"

_LEADING_NUMBER = re.compile(r'^\d+[.)]')
_TRAILING_TAGS = re.compile(r'[\(\[].+[\)\]]$')
_INVALID_CHARS = re.compile(r'[^a-z0-9 -]')


def normalized_name(stem: str) -> str:
    """
    Archive folder name for a ROM.

    Example:
        >>> normalized_name("Mario & Luigi - Superstar Saga")
        'mario-and-luigi-superstar-saga'
    """
    name = _LEADING_NUMBER.sub('', stem, count=1)
    name = _TRAILING_TAGS.sub('', name)
    name = name.strip().lower()
    name = name.replace('&', ' and ')
    name = name.replace('é', 'e')
    name = _INVALID_CHARS.sub('', name)
    return '-'.join(name.replace('-', ' ').split())


@dataclass(frozen=True)
class GopherEntry:
    """One line of a gopher directory listing."""
    item_type: str      # '0' = text file, '1' = directory, '3' = error
    display_name: str
    path: str


def parse_gopher_line(line: str) -> Optional[GopherEntry]:
    """
    Parse a gopher directory line.

    Returns:
        GopherEntry, or None for blank/short lines
    """
    if not line:
        return None
    parts = line[1:].split('\t')
    if len(parts) < 2:
        return None
    return GopherEntry(item_type=line[0], display_name=parts[0], path=parts[1])


class GameFAQsBackend(GuideBackend):
    """
    Guides from the GameFAQs archive gopher mirror.

    A ROM's guides are the text entries of
    /gamefaqs-archive/<platform>/<normalized name>.
    """

    key = "gamefaqs"
    name = "GameFAQs"

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        request_timeout: float = 30.0
    ):
        self.host = host
        self.port = port
        self.request_timeout = request_timeout

    async def _request(self, selector: str) -> bytes:
        """Send a selector and read the whole response."""
        writer = None
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.request_timeout
            )
            writer.write(f"{selector}\r\n".encode('utf-8'))
            await writer.drain()
            return await asyncio.wait_for(reader.read(), timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise NetworkError(f"GameFAQs request timed out after {self.request_timeout}s")
        except OSError as e:
            raise NetworkError(f"Failed to connect to {self.host}:{self.port}: {e}")
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError:
                    pass

    async def fetch_directory(self, selector: str) -> List[GopherEntry]:
        """List a gopher directory."""
        raw = await self._request(selector)
        entries = []
        for line in raw.decode('utf-8', errors='replace').splitlines():
            # Listing ends with a single period
            if line == '.':
                break
            entry = parse_gopher_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    async def search_guides(self, rom: RomFile) -> GuideList:
        platform = rom.console.gamefaqs_archive_id
        if not platform:
            raise NotFoundError(f"{rom.console.name} has no GameFAQs archive")

        selector = f"{ARCHIVE_ROOT}/{platform}/{normalized_name(rom.stem)}"
        logger.debug(f"Searching GameFAQs guides for '{rom.name}' at {selector}")

        entries = await self.fetch_directory(selector)
        listed = [entry for entry in entries if entry.item_type != '3']
        if not listed:
            raise NotFoundError(f"No GameFAQs archive entry for {rom.name}")

        return [
            GuideLink(title=entry.display_name, path=entry.path)
            for entry in listed
            if entry.item_type == '0' and entry.path.endswith('.txt')
        ]

    async def fetch_guide(self, link: GuideLink) -> str:
        raw = await self._request(link.path)
        return raw.decode('utf-8', errors='replace')
