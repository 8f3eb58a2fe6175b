"""
Shared pytest fixtures and utilities for the collie test suite.
"""

from io import BytesIO
from pathlib import Path
from typing import Dict, Any, Callable, List, Optional

import pytest
import yaml
from PIL import Image

from collie.api.base import GuideBackend, GuideLink, MetadataBackend, MetadataMatch
from collie.api.error_handler import NotFoundError
from collie.api.registry import BackendSet
from collie.config.consoles import Console, ConsoleCatalog


@pytest.fixture
def project_root() -> Path:
    """
    Repository root path for locating fixtures and sample data.
    """
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def gba_console() -> Console:
    return Console(
        name="Game Boy Advance",
        patterns=("GBA",),
        screenscraper_id=12,
        thegamesdb_id=5,
        gamefaqs_archive_id="gba",
    )


@pytest.fixture
def consoles(gba_console: Console) -> ConsoleCatalog:
    """
    Small console catalog (GBA and NES) for scanner and session tests.
    """
    nes = Console(
        name="Nintendo Entertainment System",
        patterns=("FC", "NES"),
        screenscraper_id=3,
        thegamesdb_id=7,
        gamefaqs_archive_id="nes",
    )
    return ConsoleCatalog([gba_console, nes])


@pytest.fixture
def make_roms(tmp_path: Path) -> Callable[..., Path]:
    """
    Create a ROMs folder with console subfolders.

    Usage:
        roms = make_roms({"GBA": ["Alpha.gba", "Beta.gba"]})
    """

    def _builder(layout: Dict[str, List[str]], root: Optional[Path] = None) -> Path:
        roms = root or tmp_path / "Roms"
        for folder, names in layout.items():
            console_dir = roms / folder
            console_dir.mkdir(parents=True, exist_ok=True)
            for name in names:
                (console_dir / name).write_bytes(b"ROM DATA " + name.encode())
        roms.mkdir(parents=True, exist_ok=True)
        return roms

    return _builder


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[[Dict[str, Any]], Path]:
    """
    Create a minimal collie.yaml in a temp directory.

    Usage:
        path = make_config({"server": {"port": 8080}})
    """

    def _builder(overrides: Dict[str, Any] | None = None) -> Path:
        base = {
            "server": {"bind": "127.0.0.1", "port": 2435, "launch_browser": False},
            "logging": {"level": "INFO"},
        }
        if overrides:
            base = merge_dicts(base, overrides)

        cfg_path = tmp_path / "collie.yaml"
        cfg_path.write_text(yaml.safe_dump(base))
        return cfg_path

    return _builder


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow+deep merge helper for fixture config dictionaries.
    """
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def png_bytes(width: int = 40, height: int = 20, color=(200, 30, 30)) -> bytes:
    """Encode a solid-color PNG."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeMetadataBackend(MetadataBackend):
    """
    In-memory metadata backend recording every call.

    `results` maps ROM names to a MetadataMatch or an exception instance;
    unknown names raise NotFoundError.
    """

    def __init__(self, key="screenscraper", name="ScreenScraper", results=None, image=None, delay=0.0):
        self.key = key
        self.name = name
        self.results = results or {}
        self.image = image if image is not None else png_bytes()
        self.delay = delay
        self.search_calls: List[str] = []
        self.art_calls: List[str] = []
        self.credentials_seen: List[Dict[str, Any]] = []

    async def search_metadata(self, rom, credentials=None, options=None):
        import asyncio

        self.search_calls.append(rom.name)
        self.credentials_seen.append(dict(credentials or {}))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(rom.name)
        if result is None:
            raise NotFoundError("Game not found")
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_box_art(self, match, width=None):
        self.art_calls.append(match.name)
        return self.image


class FakeGuideBackend(GuideBackend):
    """In-memory guide backend; `guides` maps ROM names to {filename: text}."""

    key = "gamefaqs"
    name = "GameFAQs"

    def __init__(self, guides=None):
        self.guides = guides or {}
        self.search_calls: List[str] = []

    async def search_guides(self, rom):
        self.search_calls.append(rom.name)
        files = self.guides.get(rom.name)
        if files is None:
            raise NotFoundError("No guides")
        return [GuideLink(title=name, path=f"/{rom.stem}/{name}") for name in files]

    async def fetch_guide(self, link):
        for files in self.guides.values():
            if link.filename in files:
                return files[link.filename]
        raise NotFoundError("Guide not found")


def match_for(name: str, **fields: Any) -> MetadataMatch:
    return MetadataMatch(
        name=name,
        source="test",
        developer=fields.get("developer", "Dev Co"),
        publisher=fields.get("publisher"),
        genre=fields.get("genre", "Action"),
        release_date=fields.get("release_date", "1990"),
        rating=fields.get("rating", 0.8),
        image_url=fields.get("image_url", "https://example.invalid/box.png"),
    )


def backend_factory(metadata=(), guides=()):
    """BackendSet factory returning fixed adapters regardless of the config."""

    def _factory(config):
        return BackendSet(
            metadata=[b for b in metadata if config.backend(b.key) is not None],
            guides=[b for b in guides if config.backend(b.key) is not None],
        )

    return _factory
