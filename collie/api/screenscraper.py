"""ScreenScraper metadata backend."""

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Sequence

import httpx

from collie import __version__
from collie.api.base import MetadataBackend, MetadataMatch
from collie.api.error_handler import (
    AuthError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    get_error_message,
    parse_retry_after,
)
from collie.scanner.hash_calculator import calculate_crc32
from collie.scanner.rom_types import RomFile

logger = logging.getLogger(__name__)

DEFAULT_BOX_ART_TYPE = "box-2D"
REGION_PREFERENCES = ("us", "wor", "eu", "jp", "ss")
SOFTNAME = "collie"


def get_dev_credentials() -> Dict[str, str]:
    """
    Developer credentials identifying this software to ScreenScraper.

    Read from COLLIE_SS_DEVID / COLLIE_SS_DEVPASSWORD; missing values are
    sent empty and the API answers with an auth error.
    """
    return {
        'devid': os.environ.get('COLLIE_SS_DEVID', ''),
        'devpassword': os.environ.get('COLLIE_SS_DEVPASSWORD', ''),
        'softname': f"{SOFTNAME}-{__version__}",
    }


class ScreenScraperBackend(MetadataBackend):
    """
    Client for the ScreenScraper jeuInfos.php endpoint.

    Lookups send the ROM file name, system id, size and (for small files)
    CRC32. User credentials are optional and raise the per-user quota.
    """

    key = "screenscraper"
    name = "ScreenScraper"

    BASE_URL = "https://api.screenscraper.fr/api2"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        dev_credentials: Optional[Dict[str, str]] = None,
        request_timeout: float = 30.0,
        region_preferences: Sequence[str] = REGION_PREFERENCES
    ):
        """
        Initialize backend.

        Args:
            client: Optional shared httpx.AsyncClient (closed by the owner)
            dev_credentials: devid/devpassword/softname (default: environment)
            request_timeout: Per-request timeout in seconds
            region_preferences: Media regions in order of preference
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=request_timeout)
        self.dev_credentials = dev_credentials or get_dev_credentials()
        self.request_timeout = request_timeout
        self.region_preferences = tuple(region_preferences)

    def _build_params(
        self,
        rom: RomFile,
        credentials: Optional[Dict[str, Any]],
        crc: Optional[str]
    ) -> Dict[str, str]:
        params = {
            'devid': self.dev_credentials.get('devid', ''),
            'devpassword': self.dev_credentials.get('devpassword', ''),
            'softname': self.dev_credentials.get('softname', SOFTNAME),
            'output': 'json',
            'romnom': rom.name,
            'systemeid': str(rom.console.screenscraper_id),
            'romtype': 'rom',
        }
        if rom.file_size:
            params['romtaille'] = str(rom.file_size)
        if crc:
            params['crc'] = crc

        credentials = credentials or {}
        if credentials.get('username') and credentials.get('password'):
            params['ssid'] = credentials['username']
            params['sspassword'] = credentials['password']
        return params

    async def search_metadata(
        self,
        rom: RomFile,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> MetadataMatch:
        if rom.console.screenscraper_id is None:
            raise NotFoundError(f"{rom.console.name} is not supported by ScreenScraper")

        options = options or {}
        box_art_type = options.get('boxArtType') or DEFAULT_BOX_ART_TYPE

        try:
            crc = await asyncio.to_thread(calculate_crc32, rom.path)
        except OSError as e:
            logger.debug(f"Could not hash {rom.path}: {e}")
            crc = None

        params = self._build_params(rom, credentials, crc)
        logger.debug(
            f"ScreenScraper lookup: romnom={rom.name}, systemeid={params['systemeid']}, crc={crc}"
        )

        try:
            response = await self.client.get(
                f"{self.BASE_URL}/jeuInfos.php",
                params=params,
                timeout=self.request_timeout
            )
        except httpx.TimeoutException:
            raise NetworkError(f"Request timeout after {self.request_timeout}s")
        except httpx.TransportError as e:
            raise NetworkError(f"Network error: {e}")

        self._check_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from ScreenScraper: {e}")

        return parse_game_info(data, box_art_type, self.region_preferences)

    def _check_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 200:
            return
        message = get_error_message(status)
        if status == 403:
            raise AuthError(f"ScreenScraper: {message}")
        if status == 404:
            raise NotFoundError(f"ScreenScraper: {message}")
        if 429 <= status <= 431:
            raise RateLimitedError(
                f"ScreenScraper: {message}",
                retry_after=parse_retry_after(response.headers.get('Retry-After'))
            )
        raise NetworkError(f"ScreenScraper: {message}")

    async def fetch_box_art(self, match: MetadataMatch, width: Optional[int] = None) -> bytes:
        if not match.image_url:
            raise NotFoundError("No box art available")

        params = {}
        if width:
            params['maxwidth'] = str(width)

        try:
            response = await self.client.get(
                match.image_url,
                params=params,
                timeout=self.request_timeout
            )
        except httpx.TimeoutException:
            raise NetworkError(f"Box art download timed out after {self.request_timeout}s")
        except httpx.TransportError as e:
            raise NetworkError(f"Box art download failed: {e}")

        if response.status_code == 404:
            raise NotFoundError("Box art not found")
        if 429 <= response.status_code <= 431:
            raise RateLimitedError(get_error_message(response.status_code))
        if response.status_code != 200:
            raise NetworkError(f"Box art download failed: HTTP {response.status_code}")

        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _first_text(items: Any) -> Optional[str]:
    if isinstance(items, list) and items:
        first = items[0]
        if isinstance(first, dict):
            text = first.get('text')
            return str(text) if text is not None else None
    return None


def _text(item: Any) -> Optional[str]:
    if isinstance(item, dict):
        text = item.get('text')
        return str(text) if text is not None else None
    return None


def parse_game_info(
    data: Dict[str, Any],
    box_art_type: str = DEFAULT_BOX_ART_TYPE,
    region_preferences: Sequence[str] = REGION_PREFERENCES
) -> MetadataMatch:
    """
    Extract a MetadataMatch from a jeuInfos.php JSON response.

    Raises:
        NotFoundError: If the response carries no game
    """
    if not isinstance(data, dict):
        raise NotFoundError("Empty ScreenScraper response")

    response = data.get('response')
    jeu = response.get('jeu') if isinstance(response, dict) else None
    if jeu is None:
        jeu = data.get('jeu')
    if not isinstance(jeu, dict) or not jeu:
        raise NotFoundError("ScreenScraper response has no game")

    genres = jeu.get('genres')
    genre = None
    if isinstance(genres, list) and genres and isinstance(genres[0], dict):
        genre = _first_text(genres[0].get('noms'))

    rating = None
    rating_text = _first_text(jeu.get('classifications'))
    if rating_text is not None:
        try:
            rating = float(rating_text)
        except ValueError:
            rating = None

    game_id = jeu.get('id')

    return MetadataMatch(
        name=_first_text(jeu.get('noms')) or "Unknown",
        source="ScreenScraper",
        game_id=str(game_id) if game_id is not None else None,
        description=_first_text(jeu.get('synopsis')),
        developer=_text(jeu.get('developpeur')),
        publisher=_text(jeu.get('editeur')),
        genre=genre,
        release_date=_first_text(jeu.get('dates')),
        players=_text(jeu.get('joueurs')),
        rating=rating,
        image_url=select_media_url(jeu.get('medias'), box_art_type, region_preferences),
    )


def select_media_url(
    medias: Any,
    media_type: str,
    region_preferences: Sequence[str] = REGION_PREFERENCES
) -> Optional[str]:
    """
    URL of the best media of a type, by region preference.

    Regions not in the preference list sort last.
    """
    if not isinstance(medias, list):
        return None

    matching = [
        m for m in medias
        if isinstance(m, dict) and m.get('type') == media_type and m.get('url')
    ]
    if not matching:
        return None

    def rank(media: Dict[str, Any]) -> int:
        region = media.get('region') or 'unknown'
        try:
            return list(region_preferences).index(region)
        except ValueError:
            return len(region_preferences)

    return min(matching, key=rank)['url']
