"""Rasterized analysis overlay.

Draws the same layers the analysis canvas shows (thermal zones, component
and defect boxes, voltage markers, the jumper suggestion and a legend) onto a
copy of the board image. Used for the visual section of the PDF report.
"""

import logging
import math
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..core.entities import Component, Defect, JumperSuggestion, PcbAnalysis
from ..core.status import has_voltage_mismatch
from .geometry import bbox_to_pixels

logger = logging.getLogger(__name__)

# Status palette
COLOR_OK = "#22C55E"
COLOR_WARN = "#F59E0B"
COLOR_ERROR = "#EF4444"
COLOR_DEFECT = "#A855F7"
COLOR_VOLTAGE = "#FACC15"
COLOR_JUMPER = "#38BDF8"
COLOR_THERMAL = (239, 68, 68, 90)

THERMAL_DEFECT_TYPE = "overheating"

BASE_WIDTH = 2
HOVER_WIDTH = 3
SELECTED_WIDTH = 4

LEGEND_ENTRIES = (
    (COLOR_OK, "Component OK"),
    (COLOR_DEFECT, "Defect"),
    (COLOR_WARN, "Component Issue"),
    (COLOR_VOLTAGE, "Voltage Mismatch"),
    (COLOR_ERROR, "Thermal Hotspot"),
    (COLOR_JUMPER, "Jumper Suggestion"),
)


def component_color(component: Component) -> str:
    if component.condition in ("burnt", "corroded"):
        return COLOR_ERROR
    if component.presence == "missing":
        return COLOR_WARN
    return COLOR_OK


def defect_color(defect: Defect) -> str:
    """Box colour for a non-thermal defect; every defect type shares one colour."""
    return COLOR_DEFECT


def is_thermal(defect: Defect) -> bool:
    return defect.type == THERMAL_DEFECT_TYPE


def outline_width(item_id: str, hovered_id: Optional[str], selected_id: Optional[str]) -> int:
    if item_id == selected_id:
        return SELECTED_WIDTH
    if item_id == hovered_id:
        return HOVER_WIDTH
    return BASE_WIDTH


def dashed_segments(start: Tuple[float, float], end: Tuple[float, float],
                    dash: float = 8.0, gap: float = 6.0):
    """Yield (x1, y1, x2, y2) dash segments along a line."""
    (x1, y1), (x2, y2) = start, end
    length = math.hypot(x2 - x1, y2 - y1)
    if length == 0:
        return
    ux, uy = (x2 - x1) / length, (y2 - y1) / length
    pos = 0.0
    while pos < length:
        seg_end = min(pos + dash, length)
        yield (x1 + ux * pos, y1 + uy * pos, x1 + ux * seg_end, y1 + uy * seg_end)
        pos += dash + gap


class OverlayRenderer:
    """Draw analysis layers onto a PIL image."""

    def __init__(self, scale: float = 1.0):
        self.scale = scale
        self._font = ImageFont.load_default()

    def _w(self, width: int) -> int:
        return max(1, int(round(width * self.scale)))

    def render(self, image: Image.Image, analysis: PcbAnalysis,
               board_voltage: Optional[float] = None,
               jumper: Optional[JumperSuggestion] = None,
               hovered_id: Optional[str] = None,
               selected_id: Optional[str] = None,
               show_legend: bool = True) -> Image.Image:
        """Return a new RGB image with all layers drawn."""
        base = image.convert("RGBA")
        img_w, img_h = base.size

        base = self._draw_thermal_layer(base, analysis)

        draw = ImageDraw.Draw(base)
        for component in analysis.components:
            box = bbox_to_pixels(component.bbox, img_w, img_h)
            width = self._w(outline_width(component.designator, hovered_id, selected_id))
            draw.rectangle(box, outline=component_color(component), width=width)
            if has_voltage_mismatch(component, board_voltage):
                self._draw_voltage_marker(draw, box)

        for defect in analysis.defects:
            if is_thermal(defect):
                continue
            box = bbox_to_pixels(defect.bbox, img_w, img_h)
            width = self._w(outline_width(defect.id, hovered_id, selected_id))
            draw.rectangle(box, outline=defect_color(defect), width=width)

        if jumper is not None:
            self._draw_jumper(draw, jumper, img_w, img_h)

        if show_legend:
            self._draw_legend(base)

        return base.convert("RGB")

    def _draw_thermal_layer(self, base: Image.Image, analysis: PcbAnalysis) -> Image.Image:
        zones = [d for d in analysis.defects if is_thermal(d)]
        if not zones:
            return base
        layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        for defect in zones:
            draw.ellipse(bbox_to_pixels(defect.bbox, *base.size), fill=COLOR_THERMAL)
        radius = max(2, min(base.size) // 60)
        layer = layer.filter(ImageFilter.GaussianBlur(radius))
        return Image.alpha_composite(base, layer)

    def _draw_voltage_marker(self, draw: ImageDraw.ImageDraw, box: Tuple[int, int, int, int]) -> None:
        _, y1, x2, _ = box
        r = self._w(6)
        draw.ellipse((x2 - r, y1 - r, x2 + r, y1 + r), fill=COLOR_VOLTAGE, outline="#111827")
        draw.text((x2 - r // 3, y1 - r + 1), "!", fill="#111827", font=self._font)

    def _draw_jumper(self, draw: ImageDraw.ImageDraw, jumper: JumperSuggestion, img_w: int, img_h: int) -> None:
        start = (jumper.from_point.x * img_w, jumper.from_point.y * img_h)
        end = (jumper.to_point.x * img_w, jumper.to_point.y * img_h)
        width = self._w(3)
        for seg in dashed_segments(start, end, dash=8 * self.scale, gap=6 * self.scale):
            draw.line(seg, fill=COLOR_JUMPER, width=width)
        r = self._w(5)
        for x, y in (start, end):
            draw.ellipse((x - r, y - r, x + r, y + r), fill=COLOR_JUMPER)

    def _draw_legend(self, base: Image.Image) -> None:
        draw = ImageDraw.Draw(base)
        line_h = 14
        pad = 6
        width = 130
        height = pad * 2 + line_h * (len(LEGEND_ENTRIES) + 1)
        x0 = pad
        y0 = base.size[1] - height - pad
        if y0 < 0:
            logger.debug("Image too small for overlay legend")
            return
        draw.rectangle((x0, y0, x0 + width, y0 + height), fill=(17, 24, 39, 200))
        draw.text((x0 + pad, y0 + pad), "Legend", fill="white", font=self._font)
        for i, (color, label) in enumerate(LEGEND_ENTRIES, start=1):
            y = y0 + pad + i * line_h
            draw.rectangle((x0 + pad, y + 2, x0 + pad + 8, y + 10), fill=color)
            draw.text((x0 + pad + 14, y), label, fill="#D1D5DB", font=self._font)


def render_overlay(image: Image.Image, analysis: PcbAnalysis,
                   board_voltage: Optional[float] = None,
                   jumper: Optional[JumperSuggestion] = None,
                   **kwargs) -> Image.Image:
    """Convenience wrapper around :class:`OverlayRenderer`."""
    scale = max(1.0, min(image.size) / 500.0)
    return OverlayRenderer(scale=scale).render(image, analysis, board_voltage, jumper, **kwargs)
