"""
Skip Manager - cache policy for repeated sessions

Decides per ROM whether the stored result can be reused instead of calling
any backend.
"""

from enum import Enum
from typing import Optional, Tuple
import logging

from collie.scanner.rom_types import RomFile
from collie.workflow.game_record import GameRecord, ScrapeStatus

logger = logging.getLogger(__name__)

# Metadata statuses that count as "already scraped"
CACHED_STATUSES = (ScrapeStatus.SUCCESS, ScrapeStatus.FAILED, ScrapeStatus.SKIPPED)


class SkipAction(Enum):
    """Skip mode actions"""
    SKIP = "skip"
    FULL_SCRAPE = "full_scrape"


class SkipManager:
    """
    Cache policy for one scrape session

    Decision table:
    - skip_cache on: always full scrape, previous record reset to pending
    - no record, or metadata never finished: full scrape
    - metadata finished earlier: skip; every finished track becomes skipped
      and the stored fields are kept
    """

    def __init__(self, skip_cache: bool = False):
        """
        Initialize skip manager

        Args:
            skip_cache: Ignore stored results and scrape everything again
        """
        self.skip_cache = skip_cache
        logger.info(f"Skip Manager initialized (skip_cache={self.skip_cache})")

    def determine_action(
        self,
        existing: Optional[GameRecord],
        rom: RomFile
    ) -> Tuple[SkipAction, GameRecord]:
        """
        Determine processing action for a ROM

        Args:
            existing: Stored record for the ROM, if any
            rom: ROM being processed

        Returns:
            tuple: (action, record)
                action: SkipAction enum value
                record: record to store before processing (skipped tracks
                    for SKIP, a fresh pending record for FULL_SCRAPE)
        """
        if self.skip_cache:
            logger.debug(f"{rom.name}: skip_cache -> full_scrape")
            return (SkipAction.FULL_SCRAPE, self._fresh_record(rom))

        if existing is None:
            logger.debug(f"{rom.name}: Not scraped before -> full_scrape")
            return (SkipAction.FULL_SCRAPE, self._fresh_record(rom))

        if existing.metadata.status not in CACHED_STATUSES:
            logger.debug(
                f"{rom.name}: Metadata {existing.metadata.status.value} -> full_scrape"
            )
            return (SkipAction.FULL_SCRAPE, self._fresh_record(rom))

        record = existing.copy()
        record.console = rom.console_dir.name
        record.metadata.status = ScrapeStatus.SKIPPED
        if record.guides.status.is_terminal:
            record.guides.status = ScrapeStatus.SKIPPED

        logger.debug(f"{rom.name}: Already scraped -> skip")
        return (SkipAction.SKIP, record)

    @staticmethod
    def _fresh_record(rom: RomFile) -> GameRecord:
        return GameRecord(rom_name=rom.name, console=rom.console_dir.name)
