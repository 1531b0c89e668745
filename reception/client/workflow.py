"""Enchaînement côté poste de réception: saisie, classement, clôture, archivage.

C'est la frontière la plus proche de l'utilisateur: les erreurs typées des
couches inférieures y sont converties en :class:`UserMessage`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx

from reception.client.api_client import ReceptionApiClient, TransientError
from reception.client.intake import IntakeEditor
from reception.core import models
from reception.core.completion import LotCompletion, evaluate
from reception.core.config import Settings
from reception.core.errors import ConflictError, NotFoundError, ReceptionError, ValidationError
from reception.services.archive import ArchiveResult, ArchiveUploadError, ArchiveWriteError, LotArchiver
from reception.services.pdf.lot_report import LotReportRenderer


@dataclass(frozen=True)
class UserMessage:
    level: str
    text: str
    retry: bool = False


@dataclass(frozen=True)
class WorkflowOutcome:
    lot: Optional[models.Lot] = None
    completion: Optional[LotCompletion] = None
    archive: Optional[ArchiveResult] = None
    finished_now: bool = False
    message: Optional[UserMessage] = None
    pending_upload: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.message is None or self.message.level in {"info", "success"}


def to_user_message(exc: ReceptionError) -> UserMessage:
    """Message court et localisé, avec relance quand elle a du sens."""

    if isinstance(exc, ArchiveWriteError):
        return UserMessage("error", f"Le PDF n'a pas pu être enregistré: {exc.message}", retry=True)
    if isinstance(exc, ArchiveUploadError):
        return UserMessage(
            "warning",
            f"PDF enregistré localement mais non envoyé au serveur: {exc.message}",
            retry=True,
        )
    if isinstance(exc, TransientError):
        return UserMessage("error", f"Connexion au serveur impossible: {exc.message}", retry=True)
    if isinstance(exc, NotFoundError):
        return UserMessage("error", f"Introuvable: {exc.message}", retry=True)
    if isinstance(exc, ConflictError):
        return UserMessage("warning", exc.message)
    if isinstance(exc, ValidationError):
        return UserMessage("error", exc.message)
    return UserMessage("error", f"Erreur inattendue: {exc.message}", retry=True)


class LotWorkflow:
    def __init__(
        self,
        api: ReceptionApiClient,
        archiver: LotArchiver,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api = api
        self.archiver = archiver
        self.logger = logger or logging.getLogger(__name__)

    async def submit(
        self,
        editor: IntakeEditor,
        lot_name: Optional[str] = None,
        lot_details: Optional[str] = None,
    ) -> WorkflowOutcome:
        try:
            payload = editor.build_payload(lot_name, lot_details)
            created = await self.api.create_lot(payload)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc))
        self.logger.info("[CLIENT] Lot %s créé (%s éléments)", created.id, created.total)
        editor.clear()
        outcome = await self._confirm_completion(created.id)
        if outcome.message is None:
            return WorkflowOutcome(
                lot=outcome.lot,
                completion=outcome.completion,
                archive=outcome.archive,
                finished_now=outcome.finished_now,
                message=UserMessage("success", f"Lot {created.id} enregistré ({created.total} éléments)"),
            )
        return outcome

    async def edit_item(
        self,
        item_id: int,
        *,
        state: Optional[str] = None,
        technician: Optional[str] = None,
    ) -> WorkflowOutcome:
        """Modifie un élément puis vérifie l'achèvement sur une lecture fraîche.

        ``None`` laisse le champ inchangé; une chaîne vide l'efface.
        """

        changes: dict[str, str] = {}
        if state is not None:
            changes["state"] = state
        if technician is not None:
            changes["technician"] = technician
        try:
            update = models.LotItemUpdate(**changes)
            result = await self.api.update_item(item_id, update)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc))
        except ValueError as exc:
            return WorkflowOutcome(message=UserMessage("error", str(exc)))
        return await self._confirm_completion(result.item.lot_id, hint=result.lot_finished)

    async def recover(self, lot_id: int) -> WorkflowOutcome:
        try:
            lot = await self.api.recover_lot(lot_id)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc))
        return WorkflowOutcome(
            lot=lot,
            completion=evaluate(lot.items),
            message=UserMessage("success", f"Lot {lot_id} marqué comme récupéré"),
        )

    async def regenerate(self, lot_id: int, generated_at: Optional[datetime] = None) -> WorkflowOutcome:
        try:
            lot = await self.api.get_lot(lot_id)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc))
        return await self._archive(lot, evaluate(lot.items), finished_now=False, generated_at=generated_at)

    async def retry_upload(self, lot_id: int, local_path: Path) -> WorkflowOutcome:
        try:
            result = await self.archiver.retry_upload(lot_id, local_path)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc), pending_upload=local_path)
        return WorkflowOutcome(archive=result, message=UserMessage("success", "PDF envoyé au serveur"))

    async def _confirm_completion(self, lot_id: int, *, hint: Optional[bool] = None) -> WorkflowOutcome:
        try:
            lot = await self.api.get_lot(lot_id)
        except ReceptionError as exc:
            return WorkflowOutcome(message=to_user_message(exc))
        completion = evaluate(lot.items)
        if hint is not None and hint != completion.complete:
            self.logger.warning(
                "[CLIENT] Indication serveur lotFinished=%s contredite (lot %s, en attente=%s)",
                hint,
                lot_id,
                completion.pending,
            )
        if not completion.complete or lot.finished_at is not None:
            return WorkflowOutcome(lot=lot, completion=completion)
        try:
            lot = await self.api.finish_lot(lot_id)
        except ReceptionError as exc:
            return WorkflowOutcome(lot=lot, completion=completion, message=to_user_message(exc))
        self.logger.info("[CLIENT] Lot %s terminé", lot_id)
        return await self._archive(lot, completion, finished_now=True)

    async def _archive(
        self,
        lot: models.Lot,
        completion: LotCompletion,
        *,
        finished_now: bool,
        generated_at: Optional[datetime] = None,
    ) -> WorkflowOutcome:
        try:
            result = await self.archiver.archive(lot, generated_at)
        except ArchiveUploadError as exc:
            return WorkflowOutcome(
                lot=lot,
                completion=completion,
                finished_now=finished_now,
                message=to_user_message(exc),
                pending_upload=exc.local_path,
            )
        except ReceptionError as exc:
            return WorkflowOutcome(
                lot=lot,
                completion=completion,
                finished_now=finished_now,
                message=to_user_message(exc),
            )
        lot = lot.model_copy(update={"pdf_path": result.pdf_path})
        return WorkflowOutcome(
            lot=lot,
            completion=completion,
            archive=result,
            finished_now=finished_now,
            message=UserMessage("success", f"PDF du lot {lot.id} archivé"),
        )


def build_workflow(
    settings: Settings,
    *,
    token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LotWorkflow:
    """Assemble client HTTP, moteur PDF et archiveur à partir de la configuration."""

    api = ReceptionApiClient(
        settings.SERVER_URL,
        token=token,
        upload_timeout=settings.UPLOAD_TIMEOUT_SECONDS,
        health_timeout=settings.HEALTH_TIMEOUT_SECONDS,
        health_retries=settings.HEALTH_RETRIES,
        health_backoff=settings.HEALTH_BACKOFF_SECONDS,
        transport=transport,
    )
    renderer = LotReportRenderer(settings.PDF_RENDERER, settings.PDF_TEMPLATE_PATH)
    archiver = LotArchiver(renderer, api.upload_pdf, settings.ARCHIVE_ROOT)
    return LotWorkflow(api, archiver, logger=logging.getLogger("reception.client"))
