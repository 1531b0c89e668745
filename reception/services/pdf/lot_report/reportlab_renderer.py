"""Rendu ReportLab du rapport de lot (primitives de dessin directes)."""
from __future__ import annotations

import logging
from io import BytesIO

from reportlab.pdfgen.canvas import Canvas

from .content import LotReportContent
from .layout import (
    CARD_GAP,
    CARD_HEIGHT,
    COLORS,
    COLUMNS,
    FONT_BOLD,
    FONT_REGULAR,
    FONT_SIZES,
    HEADER_ROW_HEIGHT,
    MARGIN_BOTTOM,
    MARGIN_LEFT,
    MARGIN_RIGHT,
    MARGIN_TOP,
    PAGE_SIZE,
    ROW_HEIGHT,
    fit_text,
)

logger = logging.getLogger(__name__)

FOOTER_HEIGHT = 14


class PdfBuffer(BytesIO):
    """Tampon mémoire produisant un canevas au rendu reproductible."""

    def build_canvas(self) -> Canvas:
        # invariant=1 fige les dates et l'identifiant du document.
        return Canvas(self, pagesize=PAGE_SIZE, pageCompression=0, invariant=1)


def _draw_footer(canvas: Canvas, content: LotReportContent, page_number: int) -> None:
    width, _ = PAGE_SIZE
    canvas.saveState()
    canvas.setFont(FONT_REGULAR, FONT_SIZES["small"])
    canvas.setFillColor(COLORS["muted"])
    canvas.drawString(MARGIN_LEFT, MARGIN_BOTTOM - FOOTER_HEIGHT + 4, f"Généré le {content.generated_at}")
    canvas.drawRightString(width - MARGIN_RIGHT, MARGIN_BOTTOM - FOOTER_HEIGHT + 4, f"{content.title} - Page {page_number}")
    canvas.restoreState()


def _draw_header(canvas: Canvas, content: LotReportContent, y: float) -> float:
    width, _ = PAGE_SIZE
    canvas.setFillColor(COLORS["text"])
    canvas.setFont(FONT_BOLD, FONT_SIZES["title"])
    y -= FONT_SIZES["title"]
    canvas.drawString(MARGIN_LEFT, y, fit_text(content.title, width / 2, FONT_BOLD, FONT_SIZES["title"]))
    if content.details:
        canvas.setFont(FONT_REGULAR, FONT_SIZES["subtitle"])
        canvas.setFillColor(COLORS["muted"])
        y -= FONT_SIZES["subtitle"] + 4
        canvas.drawString(
            MARGIN_LEFT,
            y,
            fit_text(content.details, width - MARGIN_LEFT - MARGIN_RIGHT, FONT_REGULAR, FONT_SIZES["subtitle"]),
        )
    y -= 8
    canvas.setFillColor(COLORS["text"])
    for label, value in content.header_lines():
        y -= FONT_SIZES["body"] + 4
        canvas.setFont(FONT_BOLD, FONT_SIZES["body"])
        canvas.drawString(MARGIN_LEFT, y, f"{label} :")
        canvas.setFont(FONT_REGULAR, FONT_SIZES["body"])
        canvas.drawString(MARGIN_LEFT + 70, y, value)
    return y - 10


def _draw_summary(canvas: Canvas, content: LotReportContent, y: float) -> float:
    width, _ = PAGE_SIZE
    canvas.setFillColor(COLORS["text"])
    canvas.setFont(FONT_BOLD, FONT_SIZES["subtitle"])
    y -= FONT_SIZES["subtitle"]
    canvas.drawString(MARGIN_LEFT, y, f"Total : {content.total} élément(s)")
    y -= 8

    usable = width - MARGIN_LEFT - MARGIN_RIGHT
    card_width = (usable - CARD_GAP * (len(content.cards) - 1)) / len(content.cards)
    card_bottom = y - CARD_HEIGHT
    for index, (label, count) in enumerate(content.cards):
        x = MARGIN_LEFT + index * (card_width + CARD_GAP)
        canvas.saveState()
        canvas.setFillColor(COLORS["card"])
        canvas.setStrokeColor(COLORS["rule"])
        canvas.roundRect(x, card_bottom, card_width, CARD_HEIGHT, 4, stroke=1, fill=1)
        canvas.restoreState()
        canvas.setFont(FONT_REGULAR, FONT_SIZES["small"])
        canvas.setFillColor(COLORS["muted"])
        canvas.drawString(x + 6, card_bottom + CARD_HEIGHT - 12, label)
        canvas.setFont(FONT_BOLD, FONT_SIZES["title"])
        canvas.setFillColor(COLORS["text"])
        canvas.drawString(x + 6, card_bottom + 7, str(count))
    return card_bottom - 14


def _draw_table_header(canvas: Canvas, y: float) -> float:
    width, _ = PAGE_SIZE
    top = y
    y -= HEADER_ROW_HEIGHT
    canvas.saveState()
    canvas.setFillColor(COLORS["table_header"])
    canvas.rect(MARGIN_LEFT, y, width - MARGIN_LEFT - MARGIN_RIGHT, top - y, stroke=0, fill=1)
    canvas.restoreState()
    canvas.setFont(FONT_BOLD, FONT_SIZES["body"])
    canvas.setFillColor(COLORS["text"])
    for column in COLUMNS:
        canvas.drawString(column.x + 2, y + 5, fit_text(column.title, column.width - 4, FONT_BOLD, FONT_SIZES["body"]))
    return y


def render_lot_report_reportlab(content: LotReportContent) -> bytes:
    """Dessine le rapport ligne par ligne en suivant l'ordonnée courante."""

    width, height = PAGE_SIZE
    buffer = PdfBuffer()
    canvas = buffer.build_canvas()
    canvas.setTitle(f"{content.title} - Rapport de lot")
    canvas.setAuthor("Réception")

    page_number = 1
    y = height - MARGIN_TOP
    y = _draw_header(canvas, content, y)
    y = _draw_summary(canvas, content, y)
    y = _draw_table_header(canvas, y)
    bottom_limit = MARGIN_BOTTOM + FOOTER_HEIGHT

    for row in content.rows:
        if y - ROW_HEIGHT < bottom_limit:
            _draw_footer(canvas, content, page_number)
            canvas.showPage()
            page_number += 1
            y = _draw_table_header(canvas, height - MARGIN_TOP)
        y -= ROW_HEIGHT
        canvas.setFont(FONT_REGULAR, FONT_SIZES["body"])
        canvas.setFillColor(COLORS["text"])
        for column, value in zip(COLUMNS, row.cells()):
            canvas.drawString(column.x + 2, y + 4, fit_text(value, column.width - 4))
        canvas.setStrokeColor(COLORS["rule"])
        canvas.setLineWidth(0.3)
        canvas.line(MARGIN_LEFT, y, width - MARGIN_RIGHT, y)

    _draw_footer(canvas, content, page_number)
    canvas.showPage()
    canvas.save()
    logger.debug("[PDF] Rendu ReportLab lot=%s pages=%s lignes=%s", content.lot_id, page_number, len(content.rows))
    return buffer.getvalue()
