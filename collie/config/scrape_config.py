"""Per-session scrape configuration sent by the control UI."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

# Fixed fallback order for metadata backends
METADATA_BACKEND_ORDER = ('screenscraper', 'thegamesdb')
GUIDE_BACKEND_ORDER = ('gamefaqs',)


class ScrapeConfigError(ValueError):
    """Malformed scrape configuration payload."""
    pass


@dataclass(frozen=True)
class BackendSettings:
    """One enabled backend with its credentials and options."""
    key: str
    credentials: Mapping[str, Any] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScrapeConfig:
    """
    Immutable configuration for one scrape session.

    Backends appear in fallback order and only when enabled.
    """
    roms_path: Path
    box_art_width: Optional[int] = None
    skip_cache: bool = False
    metadata_backends: Tuple[BackendSettings, ...] = ()
    guide_backends: Tuple[BackendSettings, ...] = ()

    @property
    def has_backends(self) -> bool:
        return bool(self.metadata_backends or self.guide_backends)

    def backend(self, key: str) -> Optional[BackendSettings]:
        for settings in self.metadata_backends + self.guide_backends:
            if settings.key == key:
                return settings
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_roms_path: Optional[Path] = None) -> 'ScrapeConfig':
        """
        Parse the camelCase JSON payload of POST /api/scrape.

        Args:
            data: Decoded JSON object
            default_roms_path: Used when romsPath is absent or empty

        Returns:
            ScrapeConfig

        Raises:
            ScrapeConfigError: If the payload has the wrong shape
        """
        if not isinstance(data, dict):
            raise ScrapeConfigError("Scrape configuration must be a JSON object")

        roms_path = data.get('romsPath') or default_roms_path
        if not roms_path:
            raise ScrapeConfigError("romsPath is required")

        width = data.get('boxArtWidth')
        if width is not None:
            try:
                width = int(width)
            except (TypeError, ValueError):
                raise ScrapeConfigError(f"boxArtWidth must be a number, got {width!r}")
            if width <= 0:
                width = None

        metadata_section = data.get('metadataBackends') or {}
        guide_section = data.get('guideBackends') or {}
        if not isinstance(metadata_section, dict) or not isinstance(guide_section, dict):
            raise ScrapeConfigError("metadataBackends and guideBackends must be objects")

        metadata_backends = []
        for key in METADATA_BACKEND_ORDER:
            section = metadata_section.get(key)
            if section is None or section is False:
                continue
            if not isinstance(section, dict):
                section = {}
            metadata_backends.append(_backend_settings(key, section))

        guide_backends = []
        for key in GUIDE_BACKEND_ORDER:
            section = guide_section.get(key)
            # Present and not explicitly false means enabled
            if section is None or section is False:
                continue
            guide_backends.append(BackendSettings(
                key=key,
                options=dict(section) if isinstance(section, dict) else {}
            ))

        return cls(
            roms_path=Path(roms_path).expanduser(),
            box_art_width=width,
            skip_cache=bool(data.get('skipCache', False)),
            metadata_backends=tuple(metadata_backends),
            guide_backends=tuple(guide_backends),
        )


_CREDENTIAL_KEYS = {
    'screenscraper': ('username', 'password'),
    'thegamesdb': ('apiKey',),
}


def _backend_settings(key: str, section: Dict[str, Any]) -> BackendSettings:
    credential_keys = _CREDENTIAL_KEYS.get(key, ())
    credentials = {}
    options = {}
    for name, value in section.items():
        if name in credential_keys:
            # Blank strings from the form count as absent
            if value not in (None, ''):
                credentials[name] = value
        else:
            options[name] = value
    return BackendSettings(key=key, credentials=credentials, options=options)
