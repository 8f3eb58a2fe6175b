"""Box art validation, resizing and storage."""

import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)


class BoxArtError(Exception):
    """Box art could not be decoded or written."""
    pass


def box_art_path(console_dir: Path, stem: str, images_folder: str = "Imgs") -> Path:
    """
    Location of a ROM's box art.

    Args:
        console_dir: Console folder holding the ROM
        stem: ROM file name without extension
        images_folder: Image folder name inside the console folder

    Returns:
        <console_dir>/<images_folder>/<stem>.png
    """
    return Path(console_dir) / images_folder / f"{stem}.png"


def target_size(size: Tuple[int, int], width: Optional[int]) -> Tuple[int, int]:
    """
    Size after fitting an image to a target width.

    Images are only scaled down; the aspect ratio is kept.
    """
    current_width, current_height = size
    if not width or current_width <= width:
        return size
    height = max(1, int(current_height * width / current_width))
    return (width, height)


def save_box_art(image_data: bytes, dest: Path, width: Optional[int] = None) -> Path:
    """
    Validate, resize and save box art as PNG.

    The file is written through a temporary sibling and renamed into place,
    so a failed write never leaves a truncated image behind.

    Args:
        image_data: Raw image bytes from the backend
        dest: Target .png path
        width: Maximum width; wider images are scaled down (LANCZOS)

    Returns:
        dest

    Raises:
        BoxArtError: If the data is not a decodable image or cannot be written
    """
    if not image_data:
        raise BoxArtError("Empty image data")

    try:
        # Verify image can be loaded
        img = Image.open(BytesIO(image_data))
        img.verify()

        # Reopen to work with it (verify() invalidates the image)
        img = Image.open(BytesIO(image_data))
        img.load()
    except Exception as e:
        raise BoxArtError(f"Invalid image: {e}")

    size = target_size(img.size, width)
    if size != img.size:
        logger.debug(f"Resizing box art {img.size[0]}x{img.size[1]} -> {size[0]}x{size[1]}")
        img = img.resize(size, Image.LANCZOS)

    if img.mode not in ('RGB', 'RGBA', 'L', 'LA', 'P'):
        img = img.convert('RGBA')

    dest = Path(dest)
    temp_file = dest.with_suffix('.tmp')
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        img.save(temp_file, format='PNG')
        temp_file.replace(dest)
    except OSError as e:
        if temp_file.exists():
            temp_file.unlink()
        raise BoxArtError(f"Failed to write {dest}: {e}")

    return dest
