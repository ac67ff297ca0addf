"""Utility functions package."""

from .geometry import fit_image, bbox_to_pixels, hit_test, place_popover, ensure_dirs
from .image_utils import SUPPORTED_MIME_TYPES, detect_mime_type, load_image_file, open_image

__all__ = [
    "fit_image", "bbox_to_pixels", "hit_test", "place_popover", "ensure_dirs",
    "SUPPORTED_MIME_TYPES", "detect_mime_type", "load_image_file", "open_image",
]
