"""BOM and PDF report export.

Exports are read-only over the analysis: a failure here never changes the
analysis or the session state.
"""

import csv
import io
import logging
import os
import time
from typing import Iterable, List, Optional, Sequence

from PIL import Image
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Image as RLImage
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

from ..core.entities import ChatMessage, Component, JumperSuggestion, PcbAnalysis
from ..core.exceptions import ExportError
from ..core.status import format_defect_type, partition_components, status_with_voltage
from ..utils.geometry import ensure_dirs
from ..utils.overlay import render_overlay

logger = logging.getLogger(__name__)

BOM_HEADERS = ["Designator", "MPN", "Presence", "Condition", "Confidence",
               "Temperature (C)", "Max Voltage (V)", "Datasheet"]
NOT_AVAILABLE = "N/A"

REPORT_TITLE = "PCB Guru - Analysis Report"

# Table header colours
HEADER_ADVICE = "#1D4ED8"
HEADER_DEFECTS = "#A855F7"
HEADER_ISSUES = "#F97316"
HEADER_OK = "#22C55E"


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _cell(value) -> str:
    if value is None or value == "":
        return NOT_AVAILABLE
    if isinstance(value, float):
        return _format_number(value)
    return str(value)


def bom_rows(components: Iterable[Component]) -> List[List[str]]:
    rows = []
    for c in components:
        rows.append([
            _cell(c.designator),
            _cell(c.mpn),
            _cell(c.presence),
            _cell(c.condition),
            _cell(c.confidence),
            _cell(c.temperature),
            _cell(c.max_voltage),
            _cell(c.datasheet_url),
        ])
    return rows


def build_bom_csv(analysis: PcbAnalysis) -> str:
    """Bill of materials as CSV text, one row per component, every value quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    buffer.write(",".join(BOM_HEADERS) + "\n")
    writer.writerows(bom_rows(analysis.components))
    return buffer.getvalue()


def write_bom_csv(analysis: PcbAnalysis, path: str) -> str:
    """Write the BOM to ``path``.

    Raises:
        ExportError: If the file cannot be written
    """
    try:
        ensure_dirs(os.path.dirname(path))
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(build_bom_csv(analysis))
    except OSError as e:
        logger.error(f"Failed to write BOM to {path}: {e}")
        raise ExportError(f"Cannot write {path}: {e}", kind=ExportError.BOM_FAILED) from e
    logger.info(f"BOM with {len(analysis.components)} rows written to {path}")
    return path


def _styled_table(rows: Sequence[Sequence[str]], header_color: str, cell_style: ParagraphStyle,
                  col_widths: Optional[Sequence[float]] = None) -> Table:
    data = [[Paragraph(escape(str(v)), cell_style) for v in row] for row in rows]
    table = Table(data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(header_color)),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def _rasterize_overlay(image: Image.Image, analysis: PcbAnalysis, board_voltage: Optional[float],
                       jumper: Optional[JumperSuggestion], max_w: float, max_h: float) -> RLImage:
    """Overlay image as a reportlab flowable.

    Raises:
        ExportError: kind ``screenshot_failed`` on any rendering failure
    """
    try:
        rendered = render_overlay(image, analysis, board_voltage, jumper)
        iw, ih = rendered.size
        scale = min(max_w / iw, max_h / ih, 1.0)
        bio = io.BytesIO()
        rendered.save(bio, format="PNG")
        bio.seek(0)
        return RLImage(bio, width=iw * scale, height=ih * scale)
    except (OSError, ValueError, TypeError, ZeroDivisionError) as e:
        logger.error(f"Overlay rasterization failed: {e}")
        raise ExportError(f"Overlay rasterization failed: {e}", kind=ExportError.SCREENSHOT_FAILED) from e


def _temperature(c: Component) -> str:
    return f"{c.temperature:.1f}" if c.temperature is not None else NOT_AVAILABLE


def build_report_story(analysis: PcbAnalysis, transcript: Sequence[ChatMessage],
                       board_voltage: Optional[float], image: Optional[Image.Image] = None,
                       jumper: Optional[JumperSuggestion] = None,
                       generated_at: Optional[str] = None) -> list:
    """Flowables for the PDF report, in reading order."""
    styles = getSampleStyleSheet()
    ps_title = ParagraphStyle("title", parent=styles["Title"], alignment=TA_CENTER)
    ps_center = ParagraphStyle("center", parent=styles["Normal"], alignment=TA_CENTER)
    ps_cell = ParagraphStyle("cell", parent=styles["Normal"], fontSize=8, leading=10)
    ps_small = ParagraphStyle("small", parent=styles["Normal"], fontSize=9)

    page_w, page_h = A4
    content_w = page_w - 60

    story = []
    story.append(Paragraph(REPORT_TITLE, ps_title))
    story.append(Paragraph(f"Report Generated: {generated_at or time.strftime('%Y-%m-%d %H:%M:%S')}", ps_center))
    story.append(Spacer(1, 6))
    story.append(Paragraph(escape(analysis.summary), ps_center))
    story.append(Spacer(1, 12))

    if image is not None:
        story.append(Paragraph("Visual Analysis", styles["Heading2"]))
        story.append(_rasterize_overlay(image, analysis, board_voltage, jumper, content_w, page_h * 0.55))
        story.append(Spacer(1, 12))

    advice = analysis.advice
    story.append(Paragraph("Repair Advice", styles["Heading2"]))
    if advice.repair_cost is not None:
        story.append(Paragraph(f"Estimated Repair Cost: ${advice.repair_cost:.2f}", ps_small))
        story.append(Spacer(1, 6))
    if advice.quick_actions:
        story.append(Paragraph("Quick Actions:", styles["Heading4"]))
        for action in advice.quick_actions:
            story.append(Paragraph(f"- {escape(action)}", ps_small))
        story.append(Spacer(1, 6))
    if advice.next_steps:
        story.append(Paragraph("Next Steps:", styles["Heading4"]))
        for step in advice.next_steps:
            story.append(Paragraph(f"- {escape(step)}", ps_small))
        story.append(Spacer(1, 6))
    replacement_rows = [
        [alt.original_mpn, rep.mpn, rep.reason]
        for alt in advice.alternatives for rep in alt.replacements
    ]
    if replacement_rows:
        story.append(Paragraph("Replacement Suggestions:", styles["Heading4"]))
        story.append(_styled_table([["Original MPN", "Replacement MPN", "Reason"]] + replacement_rows,
                                   HEADER_ADVICE, ps_cell, [content_w * 0.25, content_w * 0.25, content_w * 0.5]))
        story.append(Spacer(1, 12))

    if analysis.defects:
        story.append(Paragraph("Detected Defects", styles["Heading2"]))
        rows = [["ID", "Type", "Description", "Confidence"]]
        rows += [
            [d.id, format_defect_type(d.type), d.description or "-", f"{d.confidence * 100:.0f}%"]
            for d in analysis.defects
        ]
        story.append(_styled_table(rows, HEADER_DEFECTS, ps_cell,
                                   [content_w * 0.15, content_w * 0.2, content_w * 0.5, content_w * 0.15]))
        story.append(Spacer(1, 12))

    issues, ok = partition_components(analysis.components, board_voltage)
    component_header = ["Designator", "MPN", "Status", "Temp (C)"]
    if issues:
        story.append(Paragraph("Component Issues", styles["Heading2"]))
        rows = [component_header] + [
            [c.designator, c.mpn or NOT_AVAILABLE, status_with_voltage(c, board_voltage), _temperature(c)]
            for c in issues
        ]
        story.append(_styled_table(rows, HEADER_ISSUES, ps_cell))
        story.append(Spacer(1, 12))
    if ok:
        story.append(Paragraph("OK Components", styles["Heading2"]))
        rows = [component_header] + [
            [c.designator, c.mpn or NOT_AVAILABLE, "OK", _temperature(c)] for c in ok
        ]
        story.append(_styled_table(rows, HEADER_OK, ps_cell))
        story.append(Spacer(1, 12))

    if transcript:
        story.append(Paragraph("Repair Chat Log", styles["Heading2"]))
        for msg in transcript:
            prefix = "You: " if msg.is_user else "Guru: "
            text = escape(prefix + msg.text).replace("\n", "<br/>")
            story.append(Paragraph(text, ps_small))
            story.append(Spacer(1, 4))

    return story


def build_pdf_report(analysis: PcbAnalysis, transcript: Sequence[ChatMessage],
                     board_voltage: Optional[float], image: Optional[Image.Image] = None,
                     jumper: Optional[JumperSuggestion] = None) -> bytes:
    """Render the full PDF report.

    Args:
        analysis: Analysis to report on
        transcript: Chat messages in order
        board_voltage: Voltage used for mismatch status text
        image: Board photograph for the visual analysis section

    Raises:
        ExportError: ``screenshot_failed`` when the overlay cannot be
            rasterized, ``report_failed`` for anything else
    """
    buffer = io.BytesIO()
    try:
        story = build_report_story(analysis, transcript, board_voltage, image, jumper)
        doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=30, leftMargin=30,
                                topMargin=30, bottomMargin=30, title=REPORT_TITLE)
        doc.build(story)
    except ExportError:
        raise
    except Exception as e:
        logger.error(f"PDF generation failed: {type(e).__name__}: {e}")
        raise ExportError(f"PDF generation failed: {e}", kind=ExportError.REPORT_FAILED) from e
    pdf = buffer.getvalue()
    logger.info(f"PDF report generated ({len(pdf)} bytes)")
    return pdf


def write_pdf_report(analysis: PcbAnalysis, transcript: Sequence[ChatMessage],
                     board_voltage: Optional[float], path: str,
                     image: Optional[Image.Image] = None,
                     jumper: Optional[JumperSuggestion] = None) -> str:
    """Render the report and write it to ``path``."""
    pdf = build_pdf_report(analysis, transcript, board_voltage, image, jumper)
    try:
        ensure_dirs(os.path.dirname(path))
        with open(path, "wb") as f:
            f.write(pdf)
    except OSError as e:
        logger.error(f"Failed to write report to {path}: {e}")
        raise ExportError(f"Cannot write {path}: {e}", kind=ExportError.REPORT_FAILED) from e
    return path
