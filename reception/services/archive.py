"""Archivage local des rapports de lot et synchronisation avec le serveur.

Le rapport est d'abord écrit dans ``<racine>/<année>/<mois>/`` puis relu et
envoyé au serveur. Les deux étapes échouent avec des erreurs distinctes
afin que l'envoi puisse être relancé sans refaire le rendu.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional

from reception.core import models
from reception.core.errors import ReceptionError
from reception.core.storage import write_bytes_atomic
from reception.services.pdf.lot_report import LotReportRenderer, RenderedReport

logger = logging.getLogger(__name__)

FRENCH_MONTHS: tuple[str, ...] = (
    "Janvier",
    "Février",
    "Mars",
    "Avril",
    "Mai",
    "Juin",
    "Juillet",
    "Août",
    "Septembre",
    "Octobre",
    "Novembre",
    "Décembre",
)

_UNSAFE_CHARACTERS = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]')
_WHITESPACE = re.compile(r"\s+")
_MAX_NAME_LENGTH = 100

Uploader = Callable[[int, bytes], Awaitable[str]]


class ArchiveWriteError(ReceptionError):
    """Le rendu ou l'écriture locale a échoué; rien n'a été envoyé."""

    code = "archive_write"
    status_code = 500


class ArchiveUploadError(ReceptionError):
    """Le fichier local existe mais l'envoi au serveur a échoué."""

    code = "archive_upload"
    status_code = 503

    def __init__(self, message: str, *, lot_id: int, local_path: Optional[Path]) -> None:
        super().__init__(message)
        self.lot_id = lot_id
        self.local_path = local_path


@dataclass(frozen=True)
class ArchiveResult:
    lot_id: int
    pdf_path: str
    local_path: Optional[Path]
    renderer: Optional[str]

    @property
    def archived_locally(self) -> bool:
        return self.local_path is not None


def sanitize_lot_name(name: Optional[str]) -> str:
    """Nom de fichier sûr: caractères interdits retirés, espaces en ``_``."""

    if not name:
        return ""
    cleaned = _UNSAFE_CHARACTERS.sub("", name)
    cleaned = _WHITESPACE.sub("_", cleaned.strip())
    cleaned = cleaned.strip("._")
    return cleaned[:_MAX_NAME_LENGTH]


def archive_date(lot: models.LotSummary) -> datetime:
    return lot.finished_at or lot.created_at


def archive_path(archive_root: Path, lot: models.LotSummary) -> Path:
    stamp = archive_date(lot)
    base_name = sanitize_lot_name(lot.lot_name) or f"Lot_{lot.id}"
    return (
        archive_root
        / f"{stamp.year:04d}"
        / FRENCH_MONTHS[stamp.month - 1]
        / f"{base_name}_{stamp.strftime('%Y-%m-%d')}.pdf"
    )


class LotArchiver:
    """Rend, archive localement puis envoie le rapport d'un lot."""

    def __init__(
        self,
        renderer: LotReportRenderer,
        upload: Uploader,
        archive_root: Optional[Path] = None,
    ) -> None:
        self.renderer = renderer
        self.upload = upload
        self.archive_root = archive_root

    @property
    def available(self) -> bool:
        return self.archive_root is not None

    def write_local(self, lot: models.Lot, generated_at: datetime) -> tuple[Path, RenderedReport]:
        if self.archive_root is None:
            raise ArchiveWriteError("Archivage local non disponible")
        destination = archive_path(self.archive_root, lot)
        try:
            report = self.renderer.render(lot, generated_at)
            write_bytes_atomic(destination, report.pdf_bytes)
        except (OSError, RuntimeError) as exc:
            logger.error("[ARCHIVE] Écriture impossible lot=%s dest=%s: %s", lot.id, destination, exc)
            raise ArchiveWriteError(f"Impossible d'enregistrer le PDF du lot {lot.id}: {exc}") from exc
        logger.info("[ARCHIVE] PDF écrit lot=%s dest=%s renderer=%s", lot.id, destination, report.renderer)
        return destination, report

    async def archive(self, lot: models.Lot, generated_at: Optional[datetime] = None) -> ArchiveResult:
        generated_at = generated_at or datetime.now()
        if not self.available:
            logger.info("[ARCHIVE] Archivage local non disponible, envoi direct lot=%s", lot.id)
            try:
                report = await asyncio.to_thread(self.renderer.render, lot, generated_at)
            except RuntimeError as exc:
                raise ArchiveWriteError(f"Impossible de générer le PDF du lot {lot.id}: {exc}") from exc
            pdf_path = await self._upload(lot.id, report.pdf_bytes, local_path=None)
            return ArchiveResult(lot_id=lot.id, pdf_path=pdf_path, local_path=None, renderer=report.renderer)

        local_path, report = await asyncio.to_thread(self.write_local, lot, generated_at)
        pdf_bytes = await asyncio.to_thread(local_path.read_bytes)
        pdf_path = await self._upload(lot.id, pdf_bytes, local_path=local_path)
        return ArchiveResult(lot_id=lot.id, pdf_path=pdf_path, local_path=local_path, renderer=report.renderer)

    async def retry_upload(self, lot_id: int, local_path: Path) -> ArchiveResult:
        """Renvoie un fichier déjà archivé sans refaire le rendu."""

        try:
            pdf_bytes = await asyncio.to_thread(local_path.read_bytes)
        except OSError as exc:
            raise ArchiveWriteError(f"Fichier archivé illisible: {local_path}") from exc
        pdf_path = await self._upload(lot_id, pdf_bytes, local_path=local_path)
        return ArchiveResult(lot_id=lot_id, pdf_path=pdf_path, local_path=local_path, renderer=None)

    async def _upload(self, lot_id: int, pdf_bytes: bytes, *, local_path: Optional[Path]) -> str:
        try:
            pdf_path = await self.upload(lot_id, pdf_bytes)
        except ReceptionError as exc:
            logger.warning("[ARCHIVE] Envoi échoué lot=%s local=%s: %s", lot_id, local_path, exc)
            raise ArchiveUploadError(
                f"Envoi du PDF du lot {lot_id} impossible: {exc}",
                lot_id=lot_id,
                local_path=local_path,
            ) from exc
        logger.info("[ARCHIVE] PDF synchronisé lot=%s pdf_path=%s", lot_id, pdf_path)
        return pdf_path
