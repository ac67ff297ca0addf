"""Canvas that shows the board image with analysis overlays."""

import logging
import tkinter as tk
from typing import Callable, Optional

from PIL import Image, ImageTk

from ...controller.state import SessionState
from ...core.entities import Component, Defect
from ...core.status import component_status, format_defect_type, has_voltage_mismatch
from ...utils import overlay
from ...utils.geometry import ImagePlacement, fit_image, hit_test, place_popover

logger = logging.getLogger(__name__)

POPOVER_WIDTH = 280
POPOVER_HEIGHT = 130


class AnalysisCanvas(tk.Canvas):
    """Scaled image plus interactive boxes for components and defects."""

    def __init__(self, master, on_hover: Callable[[Optional[str]], None],
                 on_select: Callable[[Optional[str]], None],
                 on_datasheet: Callable[[str], None], **kwargs):
        kwargs.setdefault('bg', '#1f2937')
        kwargs.setdefault('highlightthickness', 0)
        super().__init__(master, **kwargs)

        self._on_hover = on_hover
        self._on_select = on_select
        self._on_datasheet = on_datasheet

        self._image: Optional[Image.Image] = None
        self._photo: Optional[ImageTk.PhotoImage] = None
        self._placement = ImagePlacement(0, 0, 0, 0)
        self._state: Optional[SessionState] = None
        self._last_hover: Optional[str] = None

        self.bind('<Configure>', lambda e: self.redraw())
        self.bind('<Motion>', self._on_motion)
        self.bind('<Leave>', lambda e: self._emit_hover(None))
        self.bind('<Button-1>', self._on_click)

    def set_image(self, image: Optional[Image.Image]):
        self._image = image
        self._photo = None
        self.redraw()

    def render(self, state: SessionState):
        self._state = state
        self.redraw()

    # -- drawing -----------------------------------------------------------

    def redraw(self):
        self.delete('all')
        width, height = self.winfo_width(), self.winfo_height()
        if self._image is None or width <= 1 or height <= 1:
            self._draw_placeholder(width, height)
            return

        self._placement = fit_image(self._image.width, self._image.height, width, height)
        size = (max(1, int(self._placement.width)), max(1, int(self._placement.height)))
        if self._photo is None or (self._photo.width(), self._photo.height()) != size:
            self._photo = ImageTk.PhotoImage(self._image.resize(size, Image.LANCZOS))
        self.create_image(self._placement.offset_x, self._placement.offset_y, image=self._photo, anchor='nw')

        state = self._state
        if state is None or state.analysis is None:
            return

        analysis = state.analysis
        for defect in analysis.defects:
            if overlay.is_thermal(defect):
                self.create_oval(*self._placement.box_to_canvas(defect.bbox),
                                 fill=overlay.COLOR_ERROR, stipple='gray25', outline='')

        for component in analysis.components:
            self._draw_box(component.designator, component.bbox, overlay.component_color(component), state)
            if has_voltage_mismatch(component, state.board_voltage):
                _, y1, x2, _ = self._placement.box_to_canvas(component.bbox)
                self.create_oval(x2 - 7, y1 - 7, x2 + 7, y1 + 7, fill=overlay.COLOR_VOLTAGE, outline='#111827')
                self.create_text(x2, y1, text='!', fill='#111827', font=('Segoe UI', 8, 'bold'))

        for defect in analysis.defects:
            if not overlay.is_thermal(defect):
                self._draw_box(defect.id, defect.bbox, overlay.defect_color(defect), state)

        jumper = state.jumper_suggestion
        if jumper is not None:
            x1, y1 = self._placement.point_to_canvas(jumper.from_point)
            x2, y2 = self._placement.point_to_canvas(jumper.to_point)
            self.create_line(x1, y1, x2, y2, fill=overlay.COLOR_JUMPER, width=3, dash=(4, 4))
            for x, y in ((x1, y1), (x2, y2)):
                self.create_oval(x - 5, y - 5, x + 5, y + 5, fill=overlay.COLOR_JUMPER, outline='')

        self._draw_legend(height)

        item = analysis.find_item(state.selected_id)
        if item is not None:
            self._draw_popover(item, state)

    def _draw_placeholder(self, width: int, height: int):
        self.create_text(max(width, 2) / 2, max(height, 2) / 2, text="Open a PCB image to analyze",
                         fill='#9ca3af', font=('Segoe UI', 12))

    def _draw_box(self, item_id: str, bbox, color: str, state: SessionState):
        width = overlay.outline_width(item_id, state.hovered_id, state.selected_id)
        self.create_rectangle(*self._placement.box_to_canvas(bbox), outline=color, width=width)

    def _draw_legend(self, height: int):
        x0, line_h = 10, 16
        y0 = height - 10 - line_h * (len(overlay.LEGEND_ENTRIES) + 1)
        self.create_rectangle(x0 - 4, y0 - 4, x0 + 140, height - 6, fill='#111827', outline='#374151')
        self.create_text(x0, y0, text="Legend", anchor='nw', fill='white', font=('Segoe UI', 9, 'bold'))
        for i, (color, label) in enumerate(overlay.LEGEND_ENTRIES, start=1):
            y = y0 + i * line_h
            self.create_rectangle(x0, y + 3, x0 + 9, y + 12, fill=color, outline='')
            self.create_text(x0 + 15, y, text=label, anchor='nw', fill='#d1d5db', font=('Segoe UI', 8))

    def _draw_popover(self, item, state: SessionState):
        pos = place_popover(item.bbox, self._placement, POPOVER_WIDTH, POPOVER_HEIGHT, self.winfo_width())
        frame = tk.Frame(self, bg='#111827', highlightbackground='#374151', highlightthickness=1)

        header = tk.Frame(frame, bg='#111827')
        header.pack(fill='x', padx=8, pady=(6, 2))
        tk.Button(header, text='x', command=lambda: self._on_select(None), relief='flat',
                  bg='#111827', fg='#9ca3af', bd=0).pack(side='right')

        if isinstance(item, Component):
            self._fill_component_info(frame, header, item, state)
        elif isinstance(item, Defect):
            self._fill_defect_info(frame, header, item)

        anchor = 'n' if pos.flipped else 's'
        self.create_window(pos.x, pos.y, window=frame, anchor=anchor, width=POPOVER_WIDTH)

    def _fill_component_info(self, frame, header, component: Component, state: SessionState):
        status = component_status(component)
        tk.Label(header, text=f"{component.designator}  {component.mpn}", bg='#111827', fg='white',
                 font=('Segoe UI', 10, 'bold')).pack(side='left')
        color = '#86efac' if status == "OK" else '#fdba74'
        tk.Label(frame, text=f"{status}  ({component.confidence * 100:.0f}% conf.)", bg='#111827',
                 fg=color).pack(anchor='w', padx=8)
        if component.temperature is not None:
            tk.Label(frame, text=f"Temperature: {component.temperature:.1f}°C", bg='#111827',
                     fg='#d1d5db').pack(anchor='w', padx=8)
        if component.max_voltage is not None:
            tk.Label(frame, text=f"Max Voltage: {component.max_voltage:g}V", bg='#111827',
                     fg='#d1d5db').pack(anchor='w', padx=8)
        if has_voltage_mismatch(component, state.board_voltage):
            tk.Label(frame, text=f"Board voltage ({state.board_voltage:g}V) exceeds max!", bg='#111827',
                     fg=overlay.COLOR_VOLTAGE).pack(anchor='w', padx=8)
        if component.mpn:
            tk.Button(frame, text="View Datasheet", command=lambda: self._on_datasheet(component.mpn)).pack(
                fill='x', padx=8, pady=6)

    def _fill_defect_info(self, frame, header, defect: Defect):
        tk.Label(header, text=format_defect_type(defect.type), bg='#111827', fg='white',
                 font=('Segoe UI', 10, 'bold')).pack(side='left')
        tk.Label(frame, text=f"ID: {defect.id}  ({defect.confidence * 100:.0f}% conf.)", bg='#111827',
                 fg='#9ca3af').pack(anchor='w', padx=8)
        if defect.description:
            tk.Label(frame, text=defect.description, bg='#111827', fg='#d1d5db', wraplength=POPOVER_WIDTH - 20,
                     justify='left').pack(anchor='w', padx=8, pady=(0, 6))

    # -- interaction -------------------------------------------------------

    def _item_at(self, x: float, y: float):
        state = self._state
        if state is None or state.analysis is None:
            return None
        point = self._placement.to_normalized(x, y)
        if point is None:
            return None
        items = list(state.analysis.components) + list(state.analysis.defects)
        return hit_test(items, *point)

    def _emit_hover(self, item_id: Optional[str]):
        if item_id != self._last_hover:
            self._last_hover = item_id
            self._on_hover(item_id)

    def _on_motion(self, event):
        item = self._item_at(event.x, event.y)
        self._emit_hover(item.identity if item is not None else None)

    def _on_click(self, event):
        item = self._item_at(event.x, event.y)
        self._on_select(item.identity if item is not None else None)
