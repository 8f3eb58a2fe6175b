"""
Session progress counters.

SessionState is the aggregate view the UI polls and the ProgressHub resyncs
new subscribers from. It is persisted to <roms>/.collie/state.json so the
last result survives a restart.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from collie.workflow.game_record import ScrapeStatus

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


@dataclass
class SessionState:
    """
    Aggregate progress of the current (or last) scrape session.

    progress (completed) always equals success_count + fail_count +
    skip_count and never exceeds total.
    """
    scraping: bool = False
    progress: int = 0
    total: int = 0
    success_count: int = 0
    fail_count: int = 0
    skip_count: int = 0
    current_message: str = ""

    @property
    def completed(self) -> int:
        return self.progress

    def reset(self, total: int, message: str = "") -> None:
        """Start a new session with a fixed total."""
        self.scraping = True
        self.progress = 0
        self.total = total
        self.success_count = 0
        self.fail_count = 0
        self.skip_count = 0
        self.current_message = message

    def record(self, outcome: ScrapeStatus) -> None:
        """
        Count one finished ROM.

        Args:
            outcome: SUCCESS, FAILED or SKIPPED

        Raises:
            ValueError: For a non-terminal outcome, or when every ROM has
                already been counted
        """
        if not outcome.is_terminal:
            raise ValueError(f"Cannot count non-terminal outcome: {outcome.value}")
        if self.progress >= self.total:
            raise ValueError("All ROMs of this session were already counted")

        if outcome == ScrapeStatus.SUCCESS:
            self.success_count += 1
        elif outcome == ScrapeStatus.SKIPPED:
            self.skip_count += 1
        else:
            self.fail_count += 1
        self.progress = self.success_count + self.fail_count + self.skip_count

    def copy(self) -> 'SessionState':
        return SessionState(**self.__dict__)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scraping': self.scraping,
            'progress': self.progress,
            'total_games': self.total,
            'success_count': self.success_count,
            'fail_count': self.fail_count,
            'skip_count': self.skip_count,
            'current_message': self.current_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionState':
        """Rebuild state from to_dict() output; a reloaded state is never scraping."""
        state = cls(
            scraping=False,
            total=int(data.get('total_games', data.get('total', 0)) or 0),
            success_count=int(data.get('success_count', 0) or 0),
            fail_count=int(data.get('fail_count', 0) or 0),
            skip_count=int(data.get('skip_count', 0) or 0),
            current_message=str(data.get('current_message') or ""),
        )
        state.progress = state.success_count + state.fail_count + state.skip_count
        # Keep the invariant even for hand-edited files
        state.total = max(state.total, state.progress)
        return state


def save_state(state: SessionState, data_dir: Path) -> Path:
    """
    Atomically write state.json.

    Args:
        state: State to persist
        data_dir: The .collie folder

    Returns:
        Path of the written file
    """
    data_dir = Path(data_dir)
    target = data_dir / STATE_FILENAME

    payload = state.to_dict()
    payload['scraping'] = False

    # Atomic write: write to temp file, then rename
    temp_file = target.with_suffix('.tmp')
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        temp_file.replace(target)
    except OSError:
        if temp_file.exists():
            temp_file.unlink()
        raise

    return target


def load_state(data_dir: Path) -> SessionState:
    """
    Load the last session state.

    Returns a fresh SessionState when no (readable) state.json exists.
    """
    path = Path(data_dir) / STATE_FILENAME
    if not path.exists():
        return SessionState()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return SessionState()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring malformed {path}")
        return SessionState()

    return SessionState.from_dict(data)
