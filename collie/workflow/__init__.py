"""Scrape session coordination package."""

from .game_record import GameRecord, GuideRecord, MetadataRecord, ScrapeStatus
from .progress import SessionState, load_state, save_state
from .skip_manager import SkipAction, SkipManager
from .store import GameRecordStore, StoreError, StoreRegistry

__all__ = [
    "GameRecord",
    "GuideRecord",
    "MetadataRecord",
    "ScrapeStatus",
    "SessionState",
    "load_state",
    "save_state",
    "SkipAction",
    "SkipManager",
    "GameRecordStore",
    "StoreError",
    "StoreRegistry",
]
