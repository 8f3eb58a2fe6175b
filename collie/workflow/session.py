"""
Scrape session state machine

Drives one scrape over a ROMs path: discovers the work set, applies the cache
policy, runs each ROM's metadata and guide tracks through per-backend rate
gates, records results in the GameRecordStore and broadcasts progress.
Exactly one session runs at a time.
"""

import asyncio
import logging
from collections import defaultdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from collie.api.error_handler import BackendError, NotFoundError, ScrapeCancelled
from collie.api.rate_gate import RateGate
from collie.api.registry import BackendSet, build_backends
from collie.config.consoles import ConsoleCatalog
from collie.config.loader import DEFAULT_CONFIG, get_config_value
from collie.config.scrape_config import BackendSettings, ScrapeConfig
from collie.config.validator import validate_scrape_config
from collie.gamelist import GAMELIST_FILENAME, GameEntry, GamelistError, GamelistWriter
from collie.media.box_art import BoxArtError, box_art_path, save_box_art
from collie.media.guides import GuideWriteError, guides_dir, save_guide
from collie.scanner.rom_scanner import ScannerError, scan_roms_path
from collie.scanner.rom_types import RomFile
from collie.ui.events import ProgressEvent
from collie.ui.progress_hub import ProgressHub
from collie.workflow.game_record import GameRecord, ScrapeStatus
from collie.workflow.progress import SessionState, save_state
from collie.workflow.skip_manager import SkipAction, SkipManager
from collie.workflow.store import GameRecordStore, StoreError, StoreRegistry

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Lifecycle phase of the scrape session"""
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"


# (phase, action) -> next phase; anything missing is not allowed
TRANSITIONS: Dict[Tuple[SessionPhase, str], SessionPhase] = {
    (SessionPhase.IDLE, 'start'): SessionPhase.RUNNING,
    (SessionPhase.RUNNING, 'stop'): SessionPhase.CANCELLING,
    (SessionPhase.RUNNING, 'settle'): SessionPhase.IDLE,
    (SessionPhase.CANCELLING, 'settle'): SessionPhase.IDLE,
}


class SessionError(Exception):
    """Scrape session errors."""
    pass


class SessionBusy(SessionError):
    """A session is already running."""

    def __init__(self, message: str = "Scraping already in progress"):
        super().__init__(message)


class SessionStartError(SessionError):
    """Session start preconditions failed."""
    pass


class _RomProgress:
    """Open tracks of one ROM; the ROM is counted when the last one closes."""

    def __init__(self, rom: RomFile, tracks: int):
        self.rom = rom
        self.remaining = tracks


class ScrapeSession:
    """
    Single process-wide scrape session.

    Example:
        session = ScrapeSession(hub, consoles, stores, config)
        await session.start(ScrapeConfig.from_dict(payload))
        ...
        await session.stop()
        await session.wait()
    """

    def __init__(
        self,
        hub: ProgressHub,
        consoles: ConsoleCatalog,
        stores: StoreRegistry,
        config: Optional[Dict[str, Any]] = None,
        backend_factory: Callable[[ScrapeConfig], BackendSet] = build_backends,
        enumerator: Callable[..., List[RomFile]] = scan_roms_path
    ):
        """
        Initialize session

        Args:
            hub: Progress broadcast
            consoles: Console definitions for ROM discovery
            stores: Per-ROMs-path game record stores
            config: Application configuration (defaults when None)
            backend_factory: Builds the enabled adapters for a ScrapeConfig
            enumerator: Discovers ROMs under a ROMs path
        """
        self.hub = hub
        self.consoles = consoles
        self.stores = stores
        self.config = config if config is not None else DEFAULT_CONFIG
        self.backend_factory = backend_factory
        self.enumerator = enumerator

        self.max_workers = int(get_config_value(self.config, 'scraping.max_workers', 4))
        self.images_folder = get_config_value(self.config, 'scraping.images_folder', 'Imgs')
        self.guides_folder = get_config_value(self.config, 'scraping.guides_folder', 'Guides')

        self._phase = SessionPhase.IDLE
        self._state = SessionState()
        self._task: Optional[asyncio.Task] = None
        self._cancel_event = asyncio.Event()

        # Per-session, set by start()
        self._scrape_config: Optional[ScrapeConfig] = None
        self._store: Optional[GameRecordStore] = None
        self._backends: Optional[BackendSet] = None
        self._metadata_gates: List[Tuple[RateGate, BackendSettings]] = []
        self._guide_gates: List[RateGate] = []
        self._skip_manager = SkipManager()
        self._roms: List[RomFile] = []

    # ------------------------------------------------------------------
    # State

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_active(self) -> bool:
        """True while RUNNING or CANCELLING."""
        return self._phase != SessionPhase.IDLE

    @property
    def state(self) -> SessionState:
        """Copy of the current SessionState."""
        return self._state.copy()

    @property
    def store(self) -> Optional[GameRecordStore]:
        """Store of the running (or last) session."""
        return self._store

    def load_state(self, state: SessionState) -> None:
        """
        Replace the idle state (after a ROMs path switch or restart).

        Raises:
            SessionBusy: If a session is active
        """
        if self.is_active:
            raise SessionBusy()
        self._state = state.copy()
        self._state.scraping = False

    def gate_stats(self) -> List[Dict[str, Any]]:
        gates = [gate for gate, _ in self._metadata_gates] + self._guide_gates
        return [gate.get_stats() for gate in gates]

    def _transition(self, action: str) -> None:
        next_phase = TRANSITIONS.get((self._phase, action))
        if next_phase is None:
            raise SessionError(f"Cannot {action} while {self._phase.value}")
        logger.debug(f"Session {self._phase.value} -> {next_phase.value} ({action})")
        self._phase = next_phase

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self, config: ScrapeConfig) -> int:
        """
        Start a session.

        Nothing is mutated unless every precondition holds.

        Args:
            config: Session configuration

        Returns:
            Number of ROMs in the work set

        Raises:
            SessionBusy: A session is already active
            SessionStartError: Preconditions failed
        """
        # No awaits until the session is committed to RUNNING
        if self.is_active:
            raise SessionBusy()

        errors = validate_scrape_config(config)
        if errors:
            raise SessionStartError("; ".join(errors))

        try:
            roms = self.enumerator(
                config.roms_path,
                self.consoles,
                extra_skipped_names=(self.images_folder, self.guides_folder)
            )
        except ScannerError as e:
            raise SessionStartError(str(e))

        backends = self.backend_factory(config)
        cancel_event = asyncio.Event()

        # Commit
        self._scrape_config = config
        self._store = self.stores.get(config.roms_path)
        self._backends = backends
        self._cancel_event = cancel_event
        self._metadata_gates = [
            (
                RateGate.from_config(
                    adapter,
                    get_config_value(self.config, f'backends.{adapter.key}'),
                    cancel_event
                ),
                config.backend(adapter.key) or BackendSettings(key=adapter.key)
            )
            for adapter in backends.metadata
        ]
        self._guide_gates = [
            RateGate.from_config(
                adapter,
                get_config_value(self.config, f'backends.{adapter.key}'),
                cancel_event
            )
            for adapter in backends.guides
        ]
        self._skip_manager = SkipManager(skip_cache=config.skip_cache)
        self._roms = list(roms)

        self._transition('start')
        self._state.reset(total=len(roms))
        self._publish(f"Found {len(roms)} ROMs to process")
        logger.info(
            f"Scrape started: {len(roms)} ROMs in {config.roms_path} "
            f"(skip_cache={config.skip_cache}, workers={self.max_workers})"
        )

        self._task = asyncio.create_task(self._run(self._roms))
        return len(roms)

    async def stop(self) -> bool:
        """
        Request cancellation.

        Returns:
            Always True; stopping an idle or already cancelling session is a
            no-op
        """
        if self._phase == SessionPhase.RUNNING:
            self._transition('stop')
            self._cancel_event.set()
            self._publish("Stopping scraping...")
            logger.info("Scrape cancellation requested")
        return True

    async def wait(self) -> None:
        """Wait for the active session (if any) to settle."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    async def _run(self, roms: List[RomFile]) -> None:
        try:
            pool = asyncio.Semaphore(max(1, self.max_workers))
            tasks = [asyncio.create_task(self._process_rom(rom, pool)) for rom in roms]
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for rom, result in zip(roms, results):
                if isinstance(result, BaseException) and not isinstance(result, ScrapeCancelled):
                    logger.error(f"Unexpected error processing {rom.name}: {result}")
        finally:
            await self._settle()

    async def _settle(self) -> None:
        """Persist everything and return to IDLE."""
        cancelled = self._phase == SessionPhase.CANCELLING
        store = self._store

        if store is not None:
            try:
                await asyncio.to_thread(store.save)
            except StoreError as e:
                logger.error(str(e))

            await asyncio.to_thread(self._write_gamelists, store, list(self._roms))

        if self._backends is not None:
            try:
                await self._backends.aclose()
            except Exception as e:
                logger.warning(f"Error closing backends: {e}")

        for stats in self.gate_stats():
            logger.info(
                f"{stats['backend']}: {stats['calls']} calls, {stats['retries']} retries, "
                f"{stats['failures']} failures"
            )

        message = "Scraping cancelled" if cancelled else "Scraping complete"
        self._state.scraping = False
        self._state.current_message = message

        if store is not None:
            try:
                save_state(self._state, store.data_dir)
            except OSError as e:
                logger.error(f"Failed to save session state: {e}")

        self._transition('settle')
        self._publish(message)
        logger.info(
            f"{message}: {self._state.success_count} succeeded, "
            f"{self._state.fail_count} failed, {self._state.skip_count} skipped "
            f"of {self._state.total}"
        )

    # ------------------------------------------------------------------
    # Per-ROM work

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ScrapeCancelled()

    async def _process_rom(self, rom: RomFile, pool: asyncio.Semaphore) -> None:
        async with pool:
            if self._cancel_event.is_set():
                return

            store = self._store
            action, record = self._skip_manager.determine_action(store.get(rom.key), rom)

            if action == SkipAction.SKIP:
                updated = store.upsert(record)
                self._count(ScrapeStatus.SKIPPED)
                self._publish(f"Already scraped, skipping: {rom.name}", rom, updated)
                return

            store.upsert(record)

            tracks = []
            if self._metadata_gates:
                tracks.append(self._metadata_track)
            if self._guide_gates:
                tracks.append(self._guide_track)

            progress = _RomProgress(rom, len(tracks))
            await asyncio.gather(*(track(progress) for track in tracks))

    async def _finish_track(
        self,
        progress: _RomProgress,
        mutator: Callable[[GameRecord], None],
        message: str
    ) -> GameRecord:
        """Store a terminal track result; count the ROM when it was the last open track."""
        record = await self._store.update(progress.rom.key, mutator)
        progress.remaining -= 1
        if progress.remaining == 0:
            self._count(self._outcome(record))
        self._publish(message, progress.rom, record)
        return record

    def _outcome(self, record: GameRecord) -> ScrapeStatus:
        if self._metadata_gates:
            track = record.metadata.status
        else:
            track = record.guides.status
        return ScrapeStatus.SUCCESS if track == ScrapeStatus.SUCCESS else ScrapeStatus.FAILED

    def _count(self, outcome: ScrapeStatus) -> None:
        try:
            self._state.record(outcome)
        except ValueError as e:
            logger.error(f"Progress counter out of sync: {e}")

    async def _metadata_track(self, progress: _RomProgress) -> None:
        rom = progress.rom
        try:
            record = await self._store.update(rom.key, _start_metadata)
            self._publish(f"Searching for: {rom.name}", rom, record)
            await self._scrape_metadata(progress)
        except ScrapeCancelled:
            await self._store.update(rom.key, _reset_metadata)
            logger.debug(f"{rom.name}: metadata search cancelled")
        except Exception as e:
            logger.exception(f"{rom.name}: metadata search failed unexpectedly")
            message = f"Failed to scrape: {e}"
            await self._finish_track(progress, _fail_metadata(message), message)

    async def _scrape_metadata(self, progress: _RomProgress) -> None:
        rom = progress.rom
        match = None
        used_gate = None
        all_not_found = True
        last_error: Optional[Exception] = None

        for gate, settings in self._metadata_gates:
            self._check_cancelled()
            self._publish(f"Trying {gate.name} for: {rom.name}", rom)
            try:
                match = await gate.call(
                    gate.adapter.search_metadata,
                    rom,
                    dict(settings.credentials),
                    dict(settings.options)
                )
            except ScrapeCancelled:
                raise
            except NotFoundError as e:
                logger.info(f"{gate.name} could not find {rom.name}")
                last_error = e
                continue
            except BackendError as e:
                logger.warning(f"{gate.name} failed for {rom.name}: {e}")
                all_not_found = False
                last_error = e
                continue
            used_gate = gate
            break

        if match is None:
            if all_not_found:
                message = "Not found in any source"
            else:
                message = str(last_error) or "Failed to scrape"
            await self._finish_track(progress, _fail_metadata(message), message)
            return

        fields = _match_fields(match)

        def found(record: GameRecord) -> None:
            for name, value in fields.items():
                setattr(record.metadata, name, value)

        record = await self._store.update(rom.key, found)
        self._publish(f"{used_gate.name}: Found {match.name}", rom, record)

        width = self._scrape_config.box_art_width
        dest = box_art_path(rom.console_dir, rom.stem, self.images_folder)
        try:
            self._check_cancelled()
            image_data = await used_gate.call(used_gate.adapter.fetch_box_art, match, width)
            await asyncio.to_thread(save_box_art, image_data, dest, width)
        except ScrapeCancelled:
            raise
        except NotFoundError:
            message = "No box art available"
            await self._finish_track(progress, _fail_metadata(message), message)
            return
        except (BackendError, BoxArtError) as e:
            message = f"Failed to download image: {e}"
            await self._finish_track(progress, _fail_metadata(message), message)
            return

        image_path = self._image_api_path(dest)

        def succeeded(record: GameRecord) -> None:
            record.metadata.status = ScrapeStatus.SUCCESS
            record.metadata.image_path = image_path
            record.metadata.error_message = None

        await self._finish_track(progress, succeeded, f"Added metadata for {match.name}")

    def _image_api_path(self, image_file: Path) -> Optional[str]:
        try:
            relative = image_file.resolve().relative_to(self._store.roms_path)
        except ValueError:
            return None
        return f"/api/images/{relative.as_posix()}"

    async def _guide_track(self, progress: _RomProgress) -> None:
        rom = progress.rom
        try:
            record = await self._store.update(rom.key, _start_guides)
            self._publish(f"Searching for guides for: {rom.name}", rom, record)
            await self._scrape_guides(progress)
        except ScrapeCancelled:
            await self._store.update(rom.key, _reset_guides)
            logger.debug(f"{rom.name}: guide search cancelled")
        except Exception as e:
            logger.exception(f"{rom.name}: guide search failed unexpectedly")
            await self._finish_track(progress, _fail_guides, f"Guide search error: {e}")

    async def _scrape_guides(self, progress: _RomProgress) -> None:
        rom = progress.rom
        links = []
        used_gate = None
        last_error: Optional[Exception] = None

        for gate in self._guide_gates:
            self._check_cancelled()
            try:
                links = await gate.call(gate.adapter.search_guides, rom)
            except ScrapeCancelled:
                raise
            except NotFoundError as e:
                logger.info(f"{gate.name} has no guides for {rom.name}")
                last_error = e
                continue
            except BackendError as e:
                logger.warning(f"{gate.name} guide search failed for {rom.name}: {e}")
                last_error = e
                continue
            if links:
                used_gate = gate
                break

        if not links:
            if last_error is not None and not isinstance(last_error, NotFoundError):
                message = f"Guide search error: {last_error}"
            else:
                message = "No guides found"
            await self._finish_track(progress, _fail_guides, message)
            return

        directory = guides_dir(rom.console_dir, rom.stem, self.guides_folder)
        saved = 0
        for link in links:
            self._check_cancelled()
            try:
                text = await used_gate.call(used_gate.adapter.fetch_guide, link)
                await asyncio.to_thread(save_guide, text, directory, link.filename)
            except ScrapeCancelled:
                raise
            except (BackendError, GuideWriteError) as e:
                logger.warning(f"Failed to download guide {link.path}: {e}")
                continue
            saved += 1

        if saved == 0:
            await self._finish_track(progress, _fail_guides, "Failed to download guides")
            return

        def succeeded(record: GameRecord) -> None:
            record.guides.status = ScrapeStatus.SUCCESS
            record.guides.count = saved

        await self._finish_track(progress, succeeded, f"Found {saved} guide(s)")

    # ------------------------------------------------------------------
    # Output

    def _publish(
        self,
        message: str,
        rom: Optional[RomFile] = None,
        record: Optional[GameRecord] = None
    ) -> None:
        self._state.current_message = message
        if rom is not None:
            logger.debug(f"{rom.name} - {message}")
        event = ProgressEvent.from_state(
            self._state,
            message,
            current_rom=rom.name if rom is not None else None,
            game_update=record
        )
        self.hub.publish(event)

    def _write_gamelists(self, store: GameRecordStore, roms: List[RomFile]) -> None:
        """Write one gamelist.xml per console folder of the session."""
        by_folder: Dict[Path, List[RomFile]] = defaultdict(list)
        for rom in roms:
            by_folder[rom.console_dir].append(rom)

        writer = GamelistWriter()
        for console_dir, console_roms in by_folder.items():
            entries = []
            for rom in console_roms:
                record = store.get(rom.key)
                if record is None:
                    continue
                entry = GameEntry.from_record(
                    record, console_dir, self.images_folder, self.guides_folder
                )
                if entry is not None:
                    entries.append(entry)
            if not entries:
                continue
            try:
                count = writer.write_gamelist(entries, console_dir / GAMELIST_FILENAME)
                logger.info(f"Wrote {console_dir / GAMELIST_FILENAME} ({count} games)")
            except (GamelistError, OSError) as e:
                logger.error(f"Failed to write gamelist for {console_dir.name}: {e}")


def _start_metadata(record: GameRecord) -> None:
    record.metadata.clear_fields()
    record.metadata.status = ScrapeStatus.SEARCHING


def _reset_metadata(record: GameRecord) -> None:
    if not record.metadata.status.is_terminal:
        record.metadata.status = ScrapeStatus.PENDING


def _fail_metadata(message: str) -> Callable[[GameRecord], None]:
    def mutate(record: GameRecord) -> None:
        record.metadata.status = ScrapeStatus.FAILED
        record.metadata.error_message = message
    return mutate


def _start_guides(record: GameRecord) -> None:
    record.guides.status = ScrapeStatus.SEARCHING
    record.guides.count = None


def _reset_guides(record: GameRecord) -> None:
    if not record.guides.status.is_terminal:
        record.guides.status = ScrapeStatus.PENDING


def _fail_guides(record: GameRecord) -> None:
    record.guides.status = ScrapeStatus.FAILED
    record.guides.count = None


def _match_fields(match) -> Dict[str, Optional[str]]:
    return {
        'name': match.name,
        'developer': match.developer,
        'publisher': match.publisher,
        'genre': match.genre,
        'release_date': match.release_date,
        'rating': match.formatted_rating(),
    }
