"""Lot report PDF renderer entry point."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from reception.core import models
from .content import LotReportContent, build_report_content
from .html_renderer import load_template, render_lot_report_html
from .playwright_support import (
    PLAYWRIGHT_OK,
    RENDERER_AUTO,
    RENDERER_HTML,
    RENDERER_REPORTLAB,
    build_diagnostics_payload,
    build_playwright_error_message,
    check_playwright_status,
)
from .reportlab_renderer import render_lot_report_reportlab

logger = logging.getLogger(__name__)


class PlaywrightPdfError(RuntimeError):
    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class RenderedReport:
    pdf_bytes: bytes
    renderer: str
    content: LotReportContent


class LotReportRenderer:
    """Choisit le moteur (HTML + Chromium ou ReportLab) et produit le PDF."""

    def __init__(self, mode: str = RENDERER_AUTO, template_path: Path | None = None) -> None:
        if mode not in {RENDERER_AUTO, RENDERER_HTML, RENDERER_REPORTLAB}:
            raise ValueError(f"Moteur PDF inconnu: {mode}")
        self.mode = mode
        self.template_path = template_path

    @property
    def template_available(self) -> bool:
        return self.template_path is not None and self.template_path.is_file()

    def diagnostics(self) -> dict[str, str | bool | None]:
        return build_diagnostics_payload(self.mode, template_available=self.template_available)

    def render(self, lot: models.Lot, generated_at: datetime) -> RenderedReport:
        content = build_report_content(lot, generated_at)
        if self.mode == RENDERER_REPORTLAB:
            return self._render_reportlab(content)

        template = load_template(self.template_path)
        if template is None:
            logger.warning("[PDF] Gabarit HTML absent (%s), rendu ReportLab", self.template_path)
            return self._render_reportlab(content)

        diagnostics = check_playwright_status()
        if diagnostics.status != PLAYWRIGHT_OK:
            message = build_playwright_error_message(diagnostics.status)
            if self.mode == RENDERER_HTML:
                raise PlaywrightPdfError(diagnostics.status, message)
            logger.warning(
                "[PDF] Falling back to ReportLab PDF renderer (status=%s): %s",
                diagnostics.status,
                message,
            )
            return self._render_reportlab(content)

        try:
            pdf_bytes = render_lot_report_html(content, template)
        except Exception as exc:
            if self.mode != RENDERER_AUTO:
                raise
            logger.warning("[PDF] Falling back to ReportLab PDF renderer: %s", exc)
            return self._render_reportlab(content)
        return RenderedReport(pdf_bytes=pdf_bytes, renderer=RENDERER_HTML, content=content)

    @staticmethod
    def _render_reportlab(content: LotReportContent) -> RenderedReport:
        return RenderedReport(
            pdf_bytes=render_lot_report_reportlab(content),
            renderer=RENDERER_REPORTLAB,
            content=content,
        )
