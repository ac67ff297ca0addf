"""Image loading utilities."""

import io
import logging
import mimetypes
import os
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..core.entities import ImageInput
from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp")

_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
}

IMAGE_FILE_TYPES = [
    ("Image files", "*.png *.jpg *.jpeg *.webp"),
    ("PNG files", "*.png"),
    ("JPEG files", "*.jpg *.jpeg"),
    ("WebP files", "*.webp"),
    ("All files", "*.*"),
]


def detect_mime_type(data: bytes, filename: Optional[str] = None) -> str:
    """Mime type from the image header, falling back to the file name."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
        if fmt in _FORMAT_TO_MIME:
            return _FORMAT_TO_MIME[fmt]
        if fmt:
            return Image.MIME.get(fmt, f"image/{fmt.lower()}")
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not identify image header: {e}")

    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return "application/octet-stream"


def load_image_file(path: str) -> ImageInput:
    """Read an image file for upload.

    Raises:
        ValidationError: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        logger.error(f"Failed to read image {path}: {e}")
        raise ValidationError(f"Cannot read {path}: {e}", user_message="Could not open the selected image.") from e

    if not data:
        raise ValidationError(f"Empty image file: {path}", user_message="The selected image is empty.")

    mime_type = detect_mime_type(data, path)
    logger.info(f"Loaded image {os.path.basename(path)} ({len(data)} bytes, {mime_type})")
    return ImageInput(data=data, mime_type=mime_type, name=os.path.basename(path))


def open_image(data: bytes) -> Image.Image:
    """Decode image bytes into an RGB PIL image."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGB")


def fit_size(image_size: Tuple[int, int], max_width: int, max_height: int) -> Tuple[int, int]:
    """Largest size that fits inside the bounds while keeping aspect ratio."""
    w, h = image_size
    if w <= 0 or h <= 0 or max_width <= 0 or max_height <= 0:
        return (0, 0)
    scale = min(max_width / w, max_height / h)
    return (max(1, int(w * scale)), max(1, int(h * scale)))
