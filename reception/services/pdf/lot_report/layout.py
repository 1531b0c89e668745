"""Mise en page fixe du rapport ReportLab."""
from __future__ import annotations

from dataclasses import dataclass

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics

from .content import COLUMN_HEADERS

PAGE_SIZE = A4
MARGIN_LEFT = 14 * mm
MARGIN_RIGHT = 14 * mm
MARGIN_TOP = 16 * mm
MARGIN_BOTTOM = 16 * mm

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZES = {"title": 16, "subtitle": 11, "body": 8, "small": 7}

ROW_HEIGHT = 14
HEADER_ROW_HEIGHT = 16
CARD_HEIGHT = 34
CARD_GAP = 6

COLORS = {
    "text": colors.HexColor("#0F172A"),
    "muted": colors.HexColor("#64748B"),
    "rule": colors.HexColor("#CBD5E1"),
    "table_header": colors.HexColor("#E2E8F0"),
    "card": colors.HexColor("#F1F5F9"),
}


@dataclass(frozen=True)
class Column:
    title: str
    x: float
    width: float


def _build_columns() -> tuple[Column, ...]:
    usable = PAGE_SIZE[0] - MARGIN_LEFT - MARGIN_RIGHT
    ratios = (0.05, 0.19, 0.09, 0.12, 0.14, 0.14, 0.13, 0.14)
    columns: list[Column] = []
    x = MARGIN_LEFT
    for title, ratio in zip(COLUMN_HEADERS, ratios):
        width = usable * ratio
        columns.append(Column(title=title, x=x, width=width))
        x += width
    return tuple(columns)


COLUMNS = _build_columns()


def fit_text(value: str, max_width: float, font_name: str = FONT_REGULAR, font_size: float = FONT_SIZES["body"]) -> str:
    """Tronque ``value`` pour tenir dans ``max_width`` points."""

    if pdfmetrics.stringWidth(value, font_name, font_size) <= max_width:
        return value
    ellipsis = "..."
    trimmed = value
    while trimmed and pdfmetrics.stringWidth(trimmed + ellipsis, font_name, font_size) > max_width:
        trimmed = trimmed[:-1]
    return trimmed + ellipsis if trimmed else ellipsis

