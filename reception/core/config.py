"""Configuration statique du service de réception."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from reception.core.env_loader import load_env

_TRUE_VALUES = {"1", "true", "yes", "on", "y", "t"}
_FALSE_VALUES = {"0", "false", "no", "off", "n", "f"}

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_DIR = Path(__file__).resolve().parents[1]


def _get_env_flag(name: str, default: bool = False) -> bool:
    """Retourne une valeur booléenne à partir d'une variable d'environnement."""

    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def _get_env_choice(name: str, choices: set[str], default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized if normalized in choices else default


def _get_env_path(name: str, default: Path | None) -> Path | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    if not value:
        return None
    return Path(value).expanduser()


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class Settings:
    """Paramètres globaux lus depuis l'environnement."""

    RECEPTION_DEBUG: bool = False
    LOTS_BACKEND: str = "sqlite"
    DATA_DIR: Path = PACKAGE_DIR / "data"
    MEDIA_ROOT: Path = PACKAGE_DIR / "media"
    LOG_DIR: Path = PROJECT_ROOT / "logs"
    ARCHIVE_ROOT: Path | None = None
    PDF_RENDERER: str = "auto"
    PDF_TEMPLATE_PATH: Path | None = PACKAGE_DIR / "services" / "pdf" / "lot_report" / "templates" / "lot_report.html"
    JWT_SECRET: str = "change-me-please"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    PUBLIC_URL: str = "http://localhost:8000"
    SERVER_URL: str = "http://localhost:8000"
    HEALTH_TIMEOUT_SECONDS: float = 3.0
    HEALTH_RETRIES: int = 3
    HEALTH_BACKOFF_SECONDS: float = 0.5
    UPLOAD_TIMEOUT_SECONDS: float = 30.0
    CORS_ORIGINS: tuple[str, ...] = field(default_factory=tuple)

    @property
    def lots_db_path(self) -> Path:
        return self.DATA_DIR / "lots.db"

    @property
    def users_db_path(self) -> Path:
        return self.DATA_DIR / "users.db"

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)


def load_settings() -> Settings:
    """Construit les paramètres à partir de l'environnement courant."""

    load_env()
    defaults = Settings()
    cors = os.getenv("CORS_ORIGINS", "")
    return Settings(
        RECEPTION_DEBUG=_get_env_flag("RECEPTION_DEBUG", default=False),
        LOTS_BACKEND=_get_env_choice("LOTS_BACKEND", {"sqlite", "memory"}, defaults.LOTS_BACKEND),
        DATA_DIR=_get_env_path("RECEPTION_DATA_DIR", defaults.DATA_DIR) or defaults.DATA_DIR,
        MEDIA_ROOT=_get_env_path("RECEPTION_MEDIA_ROOT", defaults.MEDIA_ROOT) or defaults.MEDIA_ROOT,
        LOG_DIR=_get_env_path("RECEPTION_LOG_DIR", defaults.LOG_DIR) or defaults.LOG_DIR,
        ARCHIVE_ROOT=_get_env_path("ARCHIVE_ROOT", None),
        PDF_RENDERER=_get_env_choice("PDF_RENDERER", {"auto", "html", "reportlab"}, defaults.PDF_RENDERER),
        PDF_TEMPLATE_PATH=_get_env_path("PDF_TEMPLATE_PATH", defaults.PDF_TEMPLATE_PATH),
        JWT_SECRET=os.getenv("JWT_SECRET", defaults.JWT_SECRET),
        DEFAULT_ADMIN_PASSWORD=os.getenv("DEFAULT_ADMIN_PASSWORD", defaults.DEFAULT_ADMIN_PASSWORD),
        PUBLIC_URL=os.getenv("PUBLIC_URL", defaults.PUBLIC_URL).rstrip("/"),
        SERVER_URL=os.getenv("SERVER_URL", defaults.SERVER_URL).rstrip("/"),
        HEALTH_TIMEOUT_SECONDS=_get_env_float("HEALTH_TIMEOUT_SECONDS", defaults.HEALTH_TIMEOUT_SECONDS),
        HEALTH_RETRIES=_get_env_int("HEALTH_RETRIES", defaults.HEALTH_RETRIES),
        HEALTH_BACKOFF_SECONDS=_get_env_float("HEALTH_BACKOFF_SECONDS", defaults.HEALTH_BACKOFF_SECONDS),
        UPLOAD_TIMEOUT_SECONDS=_get_env_float("UPLOAD_TIMEOUT_SECONDS", defaults.UPLOAD_TIMEOUT_SECONDS),
        CORS_ORIGINS=tuple(origin.strip() for origin in cors.split(",") if origin.strip()),
    )


settings = load_settings()
