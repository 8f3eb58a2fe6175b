"""Backend construction for one scrape session."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import httpx

from collie import __version__
from collie.api.base import GuideBackend, MetadataBackend
from collie.api.gamefaqs import GameFAQsBackend
from collie.api.screenscraper import ScreenScraperBackend
from collie.api.thegamesdb import TheGamesDBBackend
from collie.config.scrape_config import BackendSettings, ScrapeConfig

logger = logging.getLogger(__name__)

USER_AGENT = f"collie/{__version__}"


@dataclass
class BackendSet:
    """Adapters enabled for a session, in fallback order."""
    metadata: List[MetadataBackend] = field(default_factory=list)
    guides: List[GuideBackend] = field(default_factory=list)
    client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        """Close adapters and the shared HTTP client."""
        for adapter in self.metadata + self.guides:
            try:
                await adapter.aclose()
            except Exception as e:
                logger.warning(f"Error closing {adapter.name}: {e}")
        if self.client is not None:
            await self.client.aclose()


MetadataFactory = Callable[[httpx.AsyncClient, BackendSettings], MetadataBackend]
GuideFactory = Callable[[BackendSettings], GuideBackend]

METADATA_FACTORIES: Dict[str, MetadataFactory] = {
    'screenscraper': lambda client, settings: ScreenScraperBackend(client=client),
    'thegamesdb': lambda client, settings: TheGamesDBBackend(client=client),
}

GUIDE_FACTORIES: Dict[str, GuideFactory] = {
    'gamefaqs': lambda settings: GameFAQsBackend(),
}


def build_backends(
    config: ScrapeConfig,
    client: Optional[httpx.AsyncClient] = None,
    request_timeout: float = 30.0
) -> BackendSet:
    """
    Instantiate the adapters a ScrapeConfig enables.

    Args:
        config: Session configuration
        client: Shared httpx client (default: a new one owned by the set)
        request_timeout: Default HTTP timeout

    Returns:
        BackendSet in configured order
    """
    owned_client = None
    if client is None and config.metadata_backends:
        owned_client = httpx.AsyncClient(
            timeout=request_timeout,
            headers={'User-Agent': USER_AGENT},
            follow_redirects=True
        )
        client = owned_client

    backends = BackendSet(client=owned_client)

    for settings in config.metadata_backends:
        factory = METADATA_FACTORIES.get(settings.key)
        if factory is None:
            logger.warning(f"Unknown metadata backend: {settings.key}")
            continue
        backends.metadata.append(factory(client, settings))

    for settings in config.guide_backends:
        factory = GUIDE_FACTORIES.get(settings.key)
        if factory is None:
            logger.warning(f"Unknown guide backend: {settings.key}")
            continue
        backends.guides.append(factory(settings))

    logger.info(
        "Enabled backends: metadata=[%s], guides=[%s]",
        ", ".join(b.name for b in backends.metadata),
        ", ".join(b.name for b in backends.guides)
    )
    return backends
