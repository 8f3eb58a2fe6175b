"""
Media package for collie.

Writes box art images and guide text files next to the ROMs.
"""

from .box_art import BoxArtError, box_art_path, save_box_art
from .guides import GuideWriteError, guides_dir, save_guide

__all__ = [
    "BoxArtError",
    "box_art_path",
    "save_box_art",
    "GuideWriteError",
    "guides_dir",
    "save_guide",
]
