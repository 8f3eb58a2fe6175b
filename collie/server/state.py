"""Process-wide objects shared by the HTTP handlers."""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from collie.api.registry import BackendSet, build_backends
from collie.config.consoles import ConsoleCatalog, load_consoles
from collie.config.loader import DEFAULT_CONFIG, get_config_value
from collie.config.scrape_config import ScrapeConfig
from collie.ui.progress_hub import ProgressHub
from collie.workflow.progress import SessionState, load_state
from collie.workflow.session import ScrapeSession, SessionBusy
from collie.workflow.store import GameRecordStore, StoreRegistry

logger = logging.getLogger(__name__)


class AppState:
    """
    Current ROMs path, its store, the progress hub and the single session.

    Handlers only read the store and subscribe to the hub; all scraping goes
    through the session.
    """

    def __init__(
        self,
        roms_path: Path,
        config: Optional[Dict[str, Any]] = None,
        consoles: Optional[ConsoleCatalog] = None,
        backend_factory: Optional[Callable[[ScrapeConfig], BackendSet]] = None
    ):
        """
        Initialize application state

        Args:
            roms_path: Initially selected ROMs path
            config: Application configuration (defaults when None)
            consoles: Console definitions (bundled list when None)
            backend_factory: Builds session backends (default: build_backends)
        """
        self.config = config if config is not None else DEFAULT_CONFIG
        self.consoles = consoles if consoles is not None else load_consoles()
        self.stores = StoreRegistry()
        self.hub = ProgressHub(
            queue_size=get_config_value(self.config, 'progress.queue_size', 256),
            state_provider=lambda: self.session.state
        )
        self.keepalive_interval = float(
            get_config_value(self.config, 'progress.keepalive_interval', 1.0)
        )
        self.session = ScrapeSession(
            self.hub,
            self.consoles,
            self.stores,
            self.config,
            backend_factory=backend_factory or build_backends
        )

        self.roms_path = Path(roms_path).expanduser().resolve()
        self.session.load_state(load_state(self.store.data_dir))

    @property
    def store(self) -> GameRecordStore:
        """Store of the selected ROMs path."""
        return self.stores.get(self.roms_path)

    def switch_roms_path(self, roms_path: Path) -> SessionState:
        """
        Select another ROMs path and load its last session state.

        Args:
            roms_path: New ROMs path

        Returns:
            The loaded SessionState

        Raises:
            SessionBusy: If a session is active
        """
        if self.session.is_active:
            raise SessionBusy("Cannot change settings while scraping is in progress")

        resolved = Path(roms_path).expanduser().resolve()
        if resolved != self.roms_path:
            logger.info(f"ROMs path changed: {self.roms_path} -> {resolved}")
            self.roms_path = resolved
            self.session.load_state(load_state(self.store.data_dir))
        return self.session.state

    def follow_session_path(self, roms_path: Path) -> None:
        """Select the ROMs path of the session that just started; its state is already current."""
        self.roms_path = Path(roms_path).expanduser().resolve()
