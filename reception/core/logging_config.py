"""Journalisation du service: console, ``reception.log`` et ``archive.log``.

Le pipeline d'archivage écrit dans son propre fichier afin de pouvoir
retrouver les envois en échec sans parcourir tout le journal serveur.
"""
from __future__ import annotations

import logging
import logging.config
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from reception.core.config import settings

LOG_DIR = settings.LOG_DIR
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

HEALTHCHECK_PATHS = ("/health",)
ARCHIVE_LOGGER = "reception.services.archive"


class AccessPathExcludeFilter(logging.Filter):
    """Écarte les lignes d'accès uvicorn des sondes de connexion du client."""

    def __init__(self, paths: Iterable[str] = HEALTHCHECK_PATHS) -> None:
        super().__init__()
        self._paths = frozenset(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access: (client, méthode, chemin, version http, statut)
        if not isinstance(record.args, tuple) or len(record.args) < 3:
            return True
        path, _, _query = str(record.args[2]).partition("?")
        return path not in self._paths


def _rotating_file(target: Path) -> dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": "DEBUG",
        "formatter": "verbose",
        "filename": str(target),
        "maxBytes": LOG_MAX_BYTES,
        "backupCount": LOG_BACKUP_COUNT,
        "encoding": "utf-8",
    }


def _isolated(handlers: list[str], level: str = "INFO") -> dict[str, Any]:
    return {"handlers": handlers, "level": level, "propagate": False}


def build_logging_config(log_dir: Path, *, debug: bool) -> dict[str, Any]:
    server_handlers = ["console", "reception_file"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "exclude_healthcheck": {"()": AccessPathExcludeFilter, "paths": HEALTHCHECK_PATHS},
        },
        "formatters": {"verbose": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if debug else "INFO",
                "formatter": "verbose",
            },
            "access_console": {
                "class": "logging.StreamHandler",
                "level": "INFO",
                "formatter": "verbose",
                "filters": ["exclude_healthcheck"],
            },
            "reception_file": _rotating_file(log_dir / "reception.log"),
            "archive_file": _rotating_file(log_dir / "archive.log"),
        },
        "loggers": {
            "": {"handlers": server_handlers, "level": "DEBUG"},
            "uvicorn": _isolated(server_handlers),
            "uvicorn.error": _isolated(server_handlers),
            "uvicorn.access": _isolated(["access_console"]),
            ARCHIVE_LOGGER: _isolated([*server_handlers, "archive_file"], level="DEBUG"),
        },
    }


def configure_logging(log_dir: Path | None = None, *, debug: bool | None = None) -> None:
    target_dir = log_dir or LOG_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    logging.captureWarnings(True)
    logging.config.dictConfig(
        build_logging_config(target_dir, debug=settings.RECEPTION_DEBUG if debug is None else debug)
    )


__all__ = ["AccessPathExcludeFilter", "LOG_DIR", "build_logging_config", "configure_logging"]
