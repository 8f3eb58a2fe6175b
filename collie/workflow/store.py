"""
Game record store

Authoritative table of per-ROM scrape state for one ROMs path, kept in
recency order (most recently touched last) and persisted to
<roms>/.collie/games.json.
"""

import asyncio
import json
import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from collie.workflow.game_record import GameRecord

logger = logging.getLogger(__name__)

DATA_DIRNAME = ".collie"
GAMES_FILENAME = "games.json"
DEFAULT_PAGE_SIZE = 10


class StoreError(Exception):
    """Game record persistence errors."""
    pass


class GameRecordStore:
    """
    Per-ROMs-path table of GameRecords

    Rows are keyed by GameRecord.key (console folder + file name). Writers
    serialize per row through an asyncio.Lock keyed the same way.
    The recency index is guarded by a short threading.Lock that is never
    held across an await, so readers (pagination, lookups) take a snapshot
    without waiting on any row.

    Consumers only ever receive copies.
    """

    def __init__(self, roms_path: Path):
        """
        Initialize store

        Args:
            roms_path: ROMs path this store is scoped to
        """
        self.roms_path = Path(roms_path)
        self.data_dir = self.roms_path / DATA_DIRNAME
        self.games_file = self.data_dir / GAMES_FILENAME

        self._records: "OrderedDict[str, GameRecord]" = OrderedDict()
        self._row_locks: Dict[str, asyncio.Lock] = {}
        self._index_lock = threading.Lock()

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._records)

    def __contains__(self, key: str) -> bool:
        with self._index_lock:
            return key in self._records

    def _row_lock(self, key: str) -> asyncio.Lock:
        with self._index_lock:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._row_locks[key] = lock
            return lock

    def _put(self, record: GameRecord) -> None:
        with self._index_lock:
            self._records[record.key] = record
            self._records.move_to_end(record.key)

    def upsert(self, record: GameRecord) -> GameRecord:
        """
        Insert or replace a record; it becomes the most recently touched.

        Returns:
            Copy of the stored record
        """
        stored = record.copy()
        self._put(stored)
        return stored.copy()

    async def update(
        self,
        key: str,
        mutator: Callable[[GameRecord], None]
    ) -> GameRecord:
        """
        Atomically read-modify-write one row.

        The mutator receives a private copy of the row (a fresh record when
        the row does not exist yet) and edits it in place. The edited copy
        replaces the row and becomes the most recently touched.

        Args:
            key: Row key (GameRecord.key)
            mutator: Callable editing the record in place

        Returns:
            Copy of the updated record
        """
        async with self._row_lock(key):
            identity = GameRecord.for_key(key)
            with self._index_lock:
                current = self._records.get(key)
            working = current.copy() if current is not None else identity
            mutator(working)
            # Key is owned by the store
            working.rom_name = identity.rom_name
            working.console = identity.console
            self._put(working)
            return working.copy()

    def get(self, key: str) -> Optional[GameRecord]:
        """Copy of one record by key, or None."""
        with self._index_lock:
            record = self._records.get(key)
        return record.copy() if record is not None else None

    def _snapshot_newest_first(self) -> List[GameRecord]:
        with self._index_lock:
            return list(reversed(self._records.values()))

    def get_page(self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[List[GameRecord], int]:
        """
        One page of records, newest first.

        Args:
            offset: Number of records to skip (negative values count as 0)
            limit: Maximum records to return (negative values count as 0)

        Returns:
            Tuple of (records, total_count)
        """
        snapshot = self._snapshot_newest_first()
        offset = max(int(offset), 0)
        limit = max(int(limit), 0)
        page = snapshot[offset:offset + limit]
        return [record.copy() for record in page], len(snapshot)

    def list_names(self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[List[str], int]:
        """
        One page of record keys, newest first.

        Returns:
            Tuple of (keys, total_count)
        """
        snapshot = self._snapshot_newest_first()
        offset = max(int(offset), 0)
        limit = max(int(limit), 0)
        return [record.key for record in snapshot[offset:offset + limit]], len(snapshot)

    def all_records(self) -> List[GameRecord]:
        """Copies of every record, oldest first."""
        with self._index_lock:
            records = list(self._records.values())
        return [record.copy() for record in records]

    def clear_all(self) -> None:
        """Drop every row."""
        with self._index_lock:
            self._records.clear()
            self._row_locks.clear()
        logger.info(f"Cleared game records for {self.roms_path}")

    def load(self) -> int:
        """
        Load records from games.json, replacing the in-memory table.

        Returns:
            Number of records loaded (0 when there is no file)

        Raises:
            StoreError: If the file exists but cannot be parsed
        """
        if not self.games_file.exists():
            return 0

        try:
            with open(self.games_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {self.games_file}: {e}")

        entries = data.get('games') if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise StoreError(f"Malformed game records file: {self.games_file}")

        records: "OrderedDict[str, GameRecord]" = OrderedDict()
        for entry in entries:
            try:
                record = GameRecord.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed game record: {e}")
                continue
            records[record.key] = record
            records.move_to_end(record.key)

        with self._index_lock:
            self._records = records

        logger.debug(f"Loaded {len(records)} game records from {self.games_file}")
        return len(records)

    def save(self) -> Path:
        """
        Write all records to games.json (oldest first) atomically.

        Returns:
            Path of the written file

        Raises:
            StoreError: If the file cannot be written
        """
        payload = {'games': [record.to_dict() for record in self.all_records()]}

        # Atomic write: write to temp file, then rename
        temp_file = self.games_file.with_suffix('.tmp')
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            temp_file.replace(self.games_file)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StoreError(f"Failed to save game records: {e}")

        logger.debug(f"Saved {len(payload['games'])} game records to {self.games_file}")
        return self.games_file


class StoreRegistry:
    """
    One GameRecordStore per resolved ROMs path.

    Switching the configured ROMs path switches to a distinct store scope;
    switching back finds the earlier store again.
    """

    def __init__(self):
        self._stores: Dict[Path, GameRecordStore] = {}
        self._lock = threading.Lock()

    def get(self, roms_path: Path) -> GameRecordStore:
        """
        Get (loading on first use) the store for a ROMs path.
        """
        key = Path(roms_path).expanduser().resolve()
        with self._lock:
            store = self._stores.get(key)
            if store is not None:
                return store
            store = GameRecordStore(key)
            self._stores[key] = store

        try:
            store.load()
        except StoreError as e:
            logger.warning(f"Starting with empty game records: {e}")
        return store
