"""Geometry helpers for mapping normalized boxes onto a displayed image."""

import os
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..core.entities import AnalysisItem, BoundingBox, Point

FLIP_THRESHOLD = 0.25  # popovers for boxes above this line open below them
POPOVER_GAP = 10


@dataclass(frozen=True)
class ImagePlacement:
    """Where a scaled image sits inside a canvas."""
    offset_x: float
    offset_y: float
    width: float
    height: float

    def to_canvas(self, nx: float, ny: float) -> Tuple[float, float]:
        return (self.offset_x + nx * self.width, self.offset_y + ny * self.height)

    def to_normalized(self, cx: float, cy: float) -> Optional[Tuple[float, float]]:
        """Canvas point to image-normalized point, None when outside the image."""
        if self.width <= 0 or self.height <= 0:
            return None
        nx = (cx - self.offset_x) / self.width
        ny = (cy - self.offset_y) / self.height
        if not (0.0 <= nx <= 1.0 and 0.0 <= ny <= 1.0):
            return None
        return (nx, ny)

    def box_to_canvas(self, bbox: BoundingBox) -> Tuple[float, float, float, float]:
        x1, y1 = self.to_canvas(bbox.x, bbox.y)
        x2, y2 = self.to_canvas(bbox.x + bbox.w, bbox.y + bbox.h)
        return (x1, y1, x2, y2)

    def point_to_canvas(self, point: Point) -> Tuple[float, float]:
        return self.to_canvas(point.x, point.y)


def fit_image(image_w: int, image_h: int, canvas_w: int, canvas_h: int) -> ImagePlacement:
    """Scale an image to fit a canvas, centered, aspect ratio kept."""
    if image_w <= 0 or image_h <= 0 or canvas_w <= 0 or canvas_h <= 0:
        return ImagePlacement(0.0, 0.0, 0.0, 0.0)
    scale = min(canvas_w / image_w, canvas_h / image_h)
    w = image_w * scale
    h = image_h * scale
    return ImagePlacement((canvas_w - w) / 2.0, (canvas_h - h) / 2.0, w, h)


def bbox_to_pixels(bbox: BoundingBox, img_w: int, img_h: int) -> Tuple[int, int, int, int]:
    """Normalized box to integer x1,y1,x2,y2 clamped to the image."""
    x1 = int(round(bbox.x * img_w))
    y1 = int(round(bbox.y * img_h))
    x2 = int(round((bbox.x + bbox.w) * img_w))
    y2 = int(round((bbox.y + bbox.h) * img_h))
    x1 = max(0, min(x1, img_w))
    y1 = max(0, min(y1, img_h))
    x2 = max(x1, min(x2, img_w))
    y2 = max(y1, min(y2, img_h))
    return (x1, y1, x2, y2)


def hit_test(items: Sequence[AnalysisItem], nx: float, ny: float) -> Optional[AnalysisItem]:
    """Topmost item under a normalized point.

    Items later in the sequence are drawn on top; among overlapping boxes the
    smallest one wins so a part inside a larger defect zone stays reachable.
    """
    hits = [item for item in items if item.bbox.contains(nx, ny)]
    if not hits:
        return None
    return min(reversed(hits), key=lambda item: item.bbox.w * item.bbox.h)


@dataclass(frozen=True)
class PopoverPlacement:
    x: float  # center x of the popover
    y: float  # top edge when flipped, bottom edge otherwise
    flipped: bool


def place_popover(bbox: BoundingBox, placement: ImagePlacement,
                  popover_w: float, popover_h: float,
                  container_w: float) -> PopoverPlacement:
    """Anchor a popover above the box, or below it near the top edge.

    The popover is centered on the box and clamped horizontally so it stays
    inside the container.
    """
    cx, top = placement.to_canvas(bbox.x + bbox.w / 2.0, bbox.y)
    _, bottom = placement.to_canvas(bbox.x, bbox.y + bbox.h)

    half = popover_w / 2.0
    if container_w >= popover_w:
        cx = max(half, min(cx, container_w - half))

    flipped = bbox.y < FLIP_THRESHOLD or (top - POPOVER_GAP - popover_h) < 0
    if flipped:
        return PopoverPlacement(cx, bottom + POPOVER_GAP, True)
    return PopoverPlacement(cx, top - POPOVER_GAP, False)


def ensure_dirs(*dirs: str) -> None:
    """Create directories if they don't exist."""
    for d in dirs:
        if d:
            os.makedirs(d, exist_ok=True)
