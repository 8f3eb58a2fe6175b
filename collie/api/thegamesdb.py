"""TheGamesDB metadata backend."""

import logging
import re
from typing import Any, Dict, Optional

import httpx

from collie.api.base import MetadataBackend, MetadataMatch
from collie.api.error_handler import (
    AuthError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    parse_retry_after,
)
from collie.scanner.rom_types import RomFile

logger = logging.getLogger(__name__)

# Trailing "(USA)", "[!]" style dump tags
_TAG_PATTERN = re.compile(r'\s*[\(\[][^\)\]]*[\)\]]\s*$')


def search_name(stem: str) -> str:
    """ROM stem with trailing region/dump tags removed."""
    name = stem
    while True:
        stripped = _TAG_PATTERN.sub('', name)
        if stripped == name:
            break
        name = stripped
    return name.strip() or stem


class TheGamesDBBackend(MetadataBackend):
    """
    Client for TheGamesDB v1 API (Games/ByGameName with box art).

    Requires an API key; the first game of the result is used.
    """

    key = "thegamesdb"
    name = "TheGamesDB"

    BASE_URL = "https://api.thegamesdb.net/v1"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 30.0
    ):
        """
        Initialize backend.

        Args:
            client: Optional shared httpx.AsyncClient (closed by the owner)
            request_timeout: Per-request timeout in seconds
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=request_timeout)
        self.request_timeout = request_timeout

    async def search_metadata(
        self,
        rom: RomFile,
        credentials: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> MetadataMatch:
        api_key = (credentials or {}).get('apiKey')
        if not api_key:
            raise AuthError("TheGamesDB requires an API key")
        if rom.console.thegamesdb_id is None:
            raise NotFoundError(f"{rom.console.name} is not supported by TheGamesDB")

        params = {
            'apikey': api_key,
            'name': search_name(rom.stem),
            'filter[platform]': str(rom.console.thegamesdb_id),
            'include': 'boxart',
        }
        logger.debug(f"TheGamesDB lookup: name={params['name']}, platform={params['filter[platform]']}")

        try:
            response = await self.client.get(
                f"{self.BASE_URL}/Games/ByGameName",
                params=params,
                timeout=self.request_timeout
            )
        except httpx.TimeoutException:
            raise NetworkError(f"Request timeout after {self.request_timeout}s")
        except httpx.TransportError as e:
            raise NetworkError(f"Network error: {e}")

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"TheGamesDB rejected the API key (HTTP {status})")
        if status == 429:
            raise RateLimitedError(
                "TheGamesDB rate limit exceeded",
                retry_after=parse_retry_after(response.headers.get('Retry-After'))
            )
        if status == 404:
            raise NotFoundError("TheGamesDB: game not found")
        if status != 200:
            raise NetworkError(f"TheGamesDB: HTTP error {status}")

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from TheGamesDB: {e}")

        return parse_games_response(data)

    async def fetch_box_art(self, match: MetadataMatch, width: Optional[int] = None) -> bytes:
        if not match.image_url:
            raise NotFoundError("No box art available")

        try:
            response = await self.client.get(match.image_url, timeout=self.request_timeout)
        except httpx.TimeoutException:
            raise NetworkError(f"Box art download timed out after {self.request_timeout}s")
        except httpx.TransportError as e:
            raise NetworkError(f"Box art download failed: {e}")

        if response.status_code == 404:
            raise NotFoundError("Box art not found")
        if response.status_code == 429:
            raise RateLimitedError("TheGamesDB rate limit exceeded")
        if response.status_code != 200:
            raise NetworkError(f"Box art download failed: HTTP {response.status_code}")

        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def parse_games_response(data: Dict[str, Any]) -> MetadataMatch:
    """
    Extract the first game of a ByGameName response.

    Raises:
        NotFoundError: If the response lists no games
    """
    games = []
    if isinstance(data, dict) and isinstance(data.get('data'), dict):
        games = data['data'].get('games') or []
    if not games or not isinstance(games[0], dict):
        raise NotFoundError("TheGamesDB: game not found")

    game = games[0]

    rating = None
    if game.get('rating') is not None:
        try:
            rating = float(game['rating'])
        except (TypeError, ValueError):
            rating = None

    players = game.get('players')
    game_id = game.get('id')

    return MetadataMatch(
        name=str(game.get('game_title') or "Unknown"),
        source="TheGamesDB",
        game_id=str(game_id) if game_id is not None else None,
        description=game.get('overview'),
        release_date=game.get('release_date'),
        players=str(players) if players is not None else None,
        rating=rating,
        image_url=_box_art_url(data.get('include'), game_id),
    )


def _box_art_url(include: Any, game_id: Any) -> Optional[str]:
    """Front box art URL of a game, or any box art when there is no front."""
    if not isinstance(include, dict) or game_id is None:
        return None
    boxart = include.get('boxart')
    if not isinstance(boxart, dict):
        return None

    base_url = boxart.get('base_url')
    if isinstance(base_url, dict):
        base_url = base_url.get('original')
    if not base_url:
        return None

    images = (boxart.get('data') or {}).get(str(game_id))
    if not isinstance(images, list):
        return None

    images = [img for img in images if isinstance(img, dict) and img.get('filename')]
    if not images:
        return None

    front = next((img for img in images if img.get('side') == 'front'), images[0])
    return f"{base_url}{front['filename']}"
