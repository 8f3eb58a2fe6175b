"""Progress events broadcast to observers.

Events are immutable snapshots of the session counters, optionally carrying
the updated record of one ROM. They are never stored, only broadcast.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from collie.workflow.game_record import GameRecord
from collie.workflow.progress import SessionState

# Literal sent on the SSE stream when there is nothing else to say
KEEP_ALIVE = "keep-alive"


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted whenever session counters or a ROM's record change.

    Attributes:
        completed: ROMs counted so far (success + fail + skip)
        total: ROMs in the session
        success_count: ROMs whose metadata track succeeded
        fail_count: ROMs whose metadata track failed
        skip_count: ROMs served from the cache
        message: Human readable status line
        current_rom: ROM the message is about, if any
        game_update: Copy of that ROM's record after the change, if any
    """
    completed: int
    total: int
    success_count: int
    fail_count: int
    skip_count: int
    message: str
    current_rom: Optional[str] = None
    game_update: Optional[GameRecord] = None

    @classmethod
    def from_state(
        cls,
        state: SessionState,
        message: Optional[str] = None,
        current_rom: Optional[str] = None,
        game_update: Optional[GameRecord] = None
    ) -> 'ProgressEvent':
        """Build an event from the current counters."""
        return cls(
            completed=state.progress,
            total=state.total,
            success_count=state.success_count,
            fail_count=state.fail_count,
            skip_count=state.skip_count,
            message=state.current_message if message is None else message,
            current_rom=current_rom,
            game_update=game_update.copy() if game_update is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'completed': self.completed,
            'total': self.total,
            'success_count': self.success_count,
            'fail_count': self.fail_count,
            'skip_count': self.skip_count,
            'message': self.message,
            'current_rom': self.current_rom,
            'game_update': self.game_update.to_dict() if self.game_update is not None else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)
