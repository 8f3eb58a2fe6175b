"""
XML writer for per-console gamelist.xml files.

Merges scraped entries into an existing gamelist.xml by <path>, so entries
written by other tools (and unknown child elements) survive.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from lxml import etree

from .game_entry import GameEntry

logger = logging.getLogger(__name__)

GAMELIST_FILENAME = "gamelist.xml"

# Child elements owned by collie; everything else in a <game> is preserved
MANAGED_TAGS = (
    "name", "image", "rating", "releasedate", "developer", "publisher", "genre", "guide"
)


class GamelistError(Exception):
    """gamelist.xml could not be read or written."""
    pass


class GamelistWriter:
    """
    Writes gamelist.xml files.

    Features:
    - Merge by <path> into an existing file
    - Unknown elements and entries preserved
    - HTML entity handling (lxml auto-escapes)
    - Pretty-printed UTF-8 output
    """

    def write_gamelist(
        self,
        game_entries: List[GameEntry],
        output_path: Path
    ) -> int:
        """
        Write or merge gamelist.xml.

        Args:
            game_entries: Entries to write
            output_path: Path to gamelist.xml

        Returns:
            Number of <game> elements in the written file

        Raises:
            GamelistError: If the file cannot be written
        """
        output_path = Path(output_path)
        root = self._load_existing(output_path)

        existing: Dict[str, etree._Element] = {}
        for game in root.findall("game"):
            path = game.findtext("path")
            if path:
                existing[path.strip()] = game

        for entry in game_entries:
            game = existing.get(entry.path)
            if game is None:
                game = etree.SubElement(root, "game")
                self._add_element(game, "path", entry.path)
                existing[entry.path] = game
            self._apply_entry(game, entry)

        # Write to a temp file, then rename
        tree = etree.ElementTree(root)
        temp_file = output_path.with_suffix('.tmp')
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            tree.write(
                str(temp_file),
                encoding='utf-8',
                xml_declaration=True,
                pretty_print=True
            )
            temp_file.replace(output_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise GamelistError(f"Failed to write {output_path}: {e}")

        return len(root.findall("game"))

    def _load_existing(self, output_path: Path) -> etree._Element:
        """Root of the existing file, or a new <gameList>."""
        if not output_path.exists():
            return etree.Element("gameList")

        parser = etree.XMLParser(remove_blank_text=True)
        try:
            tree = etree.parse(str(output_path), parser)
        except (etree.XMLSyntaxError, OSError) as e:
            logger.warning(f"Replacing unreadable {output_path}: {e}")
            return etree.Element("gameList")

        root = tree.getroot()
        if root.tag != "gameList":
            logger.warning(f"Replacing {output_path}: unexpected root <{root.tag}>")
            return etree.Element("gameList")
        return root

    def _apply_entry(self, game: etree._Element, entry: GameEntry) -> None:
        """Replace the managed children of a <game> element."""
        for child in list(game):
            if child.tag in MANAGED_TAGS:
                game.remove(child)

        self._add_element(game, "name", entry.name)
        optional_fields = (
            ("image", entry.image),
            ("rating", entry.rating),
            ("releasedate", entry.releasedate),
            ("developer", entry.developer),
            ("publisher", entry.publisher),
            ("genre", entry.genre),
        )
        for tag, value in optional_fields:
            if value:
                self._add_element(game, tag, value)

        for guide in entry.guides:
            self._add_element(game, "guide", guide)

    def _add_element(
        self,
        parent: etree._Element,
        tag: str,
        text: Optional[str]
    ) -> None:
        """
        Add a child element with text content.

        Args:
            parent: Parent element
            tag: Element tag name
            text: Text content (will be XML-escaped by lxml)
        """
        elem = etree.SubElement(parent, tag)
        elem.text = text
