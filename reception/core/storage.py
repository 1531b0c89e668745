"""Chemins média et écriture atomique de fichiers."""
from __future__ import annotations

import logging
import os
import random
import time
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

PDF_MEDIA_SUBDIR = "pdfs"
MEDIA_URL_PREFIX = "/media"


def lot_pdf_path(media_root: Path, lot_id: int) -> Path:
    return media_root / PDF_MEDIA_SUBDIR / f"lot-{lot_id}.pdf"


def relative_to_media(media_root: Path, path: Path) -> str:
    """Return the public URL path of a media file."""

    return f"{MEDIA_URL_PREFIX}/{path.relative_to(media_root).as_posix()}"


def _replace_file(tmp_path: Path, path: Path) -> None:
    attempts = 3
    for attempt in range(1, attempts + 1):
        try:
            tmp_path.replace(path)
            return
        except OSError as exc:
            winerror = getattr(exc, "winerror", None)
            is_win32_share = isinstance(exc, PermissionError) or winerror == 32
            if not is_win32_share or attempt >= attempts:
                logger.error("[STORAGE] Replace failed pid=%s tmp=%s dest=%s", os.getpid(), tmp_path, path)
                raise
            delay = 0.05 + random.random() * 0.1
            logger.warning(
                "[STORAGE] Replace retry pid=%s attempt=%s/%s dest=%s delay=%.3fs",
                os.getpid(),
                attempt,
                attempts,
                path,
                delay,
            )
            time.sleep(delay)


def write_bytes_atomic(path: Path, data: bytes) -> Path:
    """Écrit ``data`` dans un fichier temporaire voisin puis le substitue à ``path``.

    En cas d'échec, le fichier existant reste intact et le temporaire est
    supprimé.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
    try:
        tmp_path.write_bytes(data)
        _replace_file(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return path
