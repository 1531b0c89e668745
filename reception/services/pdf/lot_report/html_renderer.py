"""HTML renderer for lot report PDFs."""
from __future__ import annotations

import html
import logging
import re
import time
from pathlib import Path

from .content import COLUMN_HEADERS, LotReportContent

logger = logging.getLogger(__name__)

_PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z_]+)\}\}")


def load_template(template_path: Path | None) -> str | None:
    if template_path is None or not template_path.is_file():
        return None
    return template_path.read_text(encoding="utf-8")


def build_fragments(content: LotReportContent) -> dict[str, str]:
    """Fragments HTML injectés dans les marqueurs ``{{NOM}}`` du gabarit."""

    details = f'<div class="details">{html.escape(content.details)}</div>' if content.details else ""
    meta = "\n".join(
        f"<dt>{html.escape(label)}</dt><dd>{html.escape(value)}</dd>" for label, value in content.header_lines()
    )
    cards = "\n".join(
        f'<div class="card"><div class="card-label">{html.escape(label)}</div>'
        f'<div class="card-count">{count}</div></div>'
        for label, count in content.cards
    )
    headers = "".join(f"<th>{html.escape(title)}</th>" for title in COLUMN_HEADERS)
    rows = "\n".join(
        "<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in row.cells()) + "</tr>"
        for row in content.rows
    )
    return {
        "TITLE": html.escape(content.title),
        "LOT_ID": str(content.lot_id),
        "DETAILS": details,
        "META": meta,
        "CREATED_AT": html.escape(content.created_at),
        "FINISHED_AT": html.escape(content.finished_at),
        "RECOVERED_AT": html.escape(content.recovered_at),
        "GENERATED_AT": html.escape(content.generated_at),
        "TOTAL": str(content.total),
        "SUMMARY_CARDS": cards,
        "COLUMN_HEADERS": headers,
        "ROWS": rows,
    }


def fill_template(template: str, content: LotReportContent) -> str:
    fragments = build_fragments(content)

    def _replace(match: re.Match[str]) -> str:
        return fragments.get(match.group(1), "")

    return _PLACEHOLDER_PATTERN.sub(_replace, template)


def render_lot_report_html(content: LotReportContent, template: str) -> bytes:
    start_time = time.perf_counter()
    html_content = fill_template(template, content)
    build_end = time.perf_counter()
    pdf_bytes = _render_html_to_pdf(html_content)
    total_time = time.perf_counter()
    logger.info(
        "[PDF] lot=%s html_build_ms=%.2f html_render_ms=%.2f size_bytes=%s",
        content.lot_id,
        (build_end - start_time) * 1000,
        (total_time - build_end) * 1000,
        len(pdf_bytes),
    )
    return pdf_bytes


def _render_html_to_pdf(html_content: str) -> bytes:
    try:
        from playwright.sync_api import sync_playwright
    except ImportError as exc:  # pragma: no cover - handled by caller
        raise RuntimeError("Playwright est requis pour générer le PDF HTML.") from exc

    with sync_playwright() as playwright:
        browser = playwright.chromium.launch()
        try:
            page = browser.new_page()
            page.set_content(html_content, wait_until="load")
            # Marges portées par la règle @page du gabarit.
            pdf_bytes = page.pdf(format="A4", print_background=True, prefer_css_page_size=True)
        finally:
            browser.close()
    return pdf_bytes
