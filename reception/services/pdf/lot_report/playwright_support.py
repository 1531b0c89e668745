"""Disponibilité de Playwright/Chromium pour le rendu HTML des rapports de lot."""
from __future__ import annotations

import logging
import platform
import subprocess
import sys
from dataclasses import dataclass
from importlib import metadata

logger = logging.getLogger(__name__)

PLAYWRIGHT_OK = "PLAYWRIGHT_OK"
PLAYWRIGHT_MISSING = "PLAYWRIGHT_MISSING"
BROWSER_MISSING = "BROWSER_MISSING"

RENDERER_HTML = "html"
RENDERER_REPORTLAB = "reportlab"
RENDERER_AUTO = "auto"

CHROMIUM_INSTALL_COMMAND = (sys.executable, "-m", "playwright", "install", "chromium")


@dataclass(frozen=True)
class PlaywrightDiagnostics:
    status: str
    playwright_available: bool
    browser_available: bool
    playwright_version: str | None

    @property
    def ok(self) -> bool:
        return self.status == PLAYWRIGHT_OK


def _installed_version() -> str | None:
    try:
        return metadata.version("playwright")
    except metadata.PackageNotFoundError:
        return None


def _launch_chromium_once() -> None:
    from playwright.sync_api import sync_playwright

    with sync_playwright() as playwright:
        playwright.chromium.launch().close()


def check_playwright_status() -> PlaywrightDiagnostics:
    """Sonde le module Playwright puis un lancement réel de Chromium."""

    try:
        import playwright.sync_api  # noqa: F401
    except ImportError:
        return PlaywrightDiagnostics(PLAYWRIGHT_MISSING, False, False, None)

    version = _installed_version()
    try:
        _launch_chromium_once()
    except Exception as exc:  # pragma: no cover - dépend du poste
        logger.warning("[PDF] Lancement de Chromium impossible: %s", exc)
        return PlaywrightDiagnostics(BROWSER_MISSING, True, False, version)
    return PlaywrightDiagnostics(PLAYWRIGHT_OK, True, True, version)


def resolve_renderer_mode(mode: str, diagnostics: PlaywrightDiagnostics | None, *, template_available: bool) -> str:
    """Moteur réellement utilisé pour le mode demandé."""

    if mode != RENDERER_AUTO:
        return mode
    html_ready = template_available and diagnostics is not None and diagnostics.ok
    return RENDERER_HTML if html_ready else RENDERER_REPORTLAB


def build_playwright_error_message(status: str) -> str:
    if status == PLAYWRIGHT_MISSING:
        return f"Playwright n'est pas installé. Installez-le avec : {sys.executable} -m pip install playwright"
    if status == BROWSER_MISSING:
        return f"Chromium n'est pas installé pour Playwright. Installez-le avec : {' '.join(CHROMIUM_INSTALL_COMMAND)}"
    return "Playwright est disponible."


def install_chromium() -> bool:
    logger.warning("[PDF] Installation de Chromium: %s", " ".join(CHROMIUM_INSTALL_COMMAND))
    try:
        result = subprocess.run(CHROMIUM_INSTALL_COMMAND, check=False, capture_output=True, text=True)
    except OSError as exc:
        logger.error("[PDF] Installation de Chromium impossible: %s", exc)
        return False
    if result.returncode != 0:
        logger.error(
            "[PDF] Installation de Chromium en échec (code=%s) stderr=%s",
            result.returncode,
            result.stderr.strip(),
        )
        return False
    logger.info("[PDF] Chromium installé pour Playwright")
    return True


def maybe_install_chromium_on_startup(mode: str) -> PlaywrightDiagnostics | None:
    """En mode ``auto``, installe Chromium au démarrage s'il manque."""

    if mode != RENDERER_AUTO:
        return None
    diagnostics = check_playwright_status()
    if diagnostics.status != BROWSER_MISSING or not install_chromium():
        return diagnostics
    return check_playwright_status()


def build_diagnostics_payload(mode: str, *, template_available: bool) -> dict[str, str | bool | None]:
    diagnostics = check_playwright_status()
    return {
        "renderer_mode": mode,
        "renderer_active": resolve_renderer_mode(mode, diagnostics, template_available=template_available),
        "template_available": template_available,
        "playwright_status": diagnostics.status,
        "playwright_available": diagnostics.playwright_available,
        "browser_available": diagnostics.browser_available,
        "playwright_version": diagnostics.playwright_version,
        "python_executable": sys.executable,
        "os": platform.platform(),
    }
