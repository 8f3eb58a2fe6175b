"""
Gamelist generation package for collie.

Writes one gamelist.xml per console folder from the stored game records.
"""

from .game_entry import GameEntry
from .xml_writer import GamelistWriter, GamelistError, GAMELIST_FILENAME

__all__ = [
    'GameEntry',
    'GamelistWriter',
    'GamelistError',
    'GAMELIST_FILENAME',
]
