"""CRC32 calculation for ROM lookups."""

import zlib
from pathlib import Path
from typing import Optional

DEFAULT_SIZE_LIMIT = 64 * 1024 * 1024  # larger images are looked up by name only
CHUNK_SIZE = 8 * 1024 * 1024


def calculate_crc32(file_path: Path, size_limit: int = DEFAULT_SIZE_LIMIT) -> Optional[str]:
    """
    CRC32 of a ROM image as ScreenScraper expects it (8 uppercase hex digits).

    Args:
        file_path: ROM file
        size_limit: Skip files larger than this; 0 hashes everything

    Returns:
        Hex CRC, or None when the file is over the limit

    Raises:
        OSError: If the file cannot be read
    """
    if size_limit > 0 and Path(file_path).stat().st_size > size_limit:
        return None

    crc = 0
    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            crc = zlib.crc32(chunk, crc)
    return f"{crc & 0xFFFFFFFF:08X}"
