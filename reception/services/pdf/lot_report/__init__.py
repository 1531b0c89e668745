"""Lot report PDF rendering package."""

from .renderer import LotReportRenderer, PlaywrightPdfError, RenderedReport

__all__ = ["LotReportRenderer", "PlaywrightPdfError", "RenderedReport"]
