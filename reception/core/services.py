"""Règles métier des lots, indépendantes du dépôt utilisé."""
from __future__ import annotations

import base64
import binascii
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from reception.core import models
from reception.core.completion import evaluate, is_item_complete
from reception.core.errors import ConflictError, NotFoundError, ValidationError
from reception.core.repositories import LotRepository
from reception.core.storage import lot_pdf_path, relative_to_media, write_bytes_atomic
from reception.services.pdf.lot_report import LotReportRenderer

PDF_SIGNATURE = b"%PDF"


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


class LotService:
    """Orchestre le dépôt, l'évaluateur d'achèvement et le stockage des PDF."""

    def __init__(
        self,
        repository: LotRepository,
        *,
        renderer: LotReportRenderer,
        media_root: Path,
        public_url: str = "",
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.repository = repository
        self.renderer = renderer
        self.media_root = media_root
        self.public_url = public_url.rstrip("/")
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    # Lecture --------------------------------------------------------------

    def list_lots(
        self, status: str = "all", *, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[models.LotSummary]:
        return self.repository.list_lots(status, date_from=date_from, date_to=date_to)

    def get_lot(self, lot_id: int) -> models.Lot:
        return self.repository.get_lot(lot_id)

    # Création et édition --------------------------------------------------

    def create_lot(self, payload: models.LotCreate) -> models.LotCreated:
        created = self.repository.create_lot(payload, now=self.clock())
        self.logger.info("[LOTS] Lot créé id=%s total=%s", created.id, created.total)
        return created

    def update_item(self, item_id: int, changes: models.LotItemUpdate) -> models.ItemUpdateResult:
        """Applique une édition puis réévalue le lot à partir d'une lecture fraîche.

        Sur un lot terminé, seules les éditions qui laissent l'élément complet
        sont acceptées: ``finished_at`` n'est jamais effacé.
        """

        current = self.repository.get_item(item_id)
        lot = self.repository.get_lot(current.lot_id)
        if lot.finished_at is not None:
            candidate = current.model_copy(update={name: getattr(changes, name) for name in changes.model_fields_set})
            if not is_item_complete(candidate):
                raise ConflictError(
                    f"Le lot {lot.id} est terminé: l'élément doit conserver un état et un technicien"
                )
        item = self.repository.update_item(item_id, changes, now=self.clock())
        completion = evaluate(self.repository.list_items(item.lot_id))
        self.logger.info(
            "[LOTS] Élément %s modifié lot=%s champs=%s en_attente=%s",
            item_id,
            item.lot_id,
            sorted(changes.model_fields_set),
            completion.pending,
        )
        return models.ItemUpdateResult(item=item, lot_finished=completion.complete)

    def _require_complete(self, lot_id: int) -> None:
        completion = evaluate(self.repository.list_items(lot_id))
        if not completion.complete:
            raise ConflictError(
                f"Le lot {lot_id} n'est pas terminé: {completion.pending} élément(s) en attente"
                if completion.total
                else f"Le lot {lot_id} ne contient aucun élément"
            )

    def finish_lot(self, lot_id: int, finished_at: Optional[datetime] = None) -> models.Lot:
        self._require_complete(lot_id)
        lot = self.repository.mark_finished(lot_id, finished_at or self.clock())
        self.logger.info("[LOTS] Lot %s terminé finished_at=%s", lot_id, lot.finished_at)
        return lot

    def recover_lot(self, lot_id: int, recovered_at: Optional[datetime] = None) -> models.Lot:
        lot = self.repository.mark_recovered(lot_id, recovered_at or self.clock())
        self.logger.info("[LOTS] Lot %s récupéré recovered_at=%s", lot_id, lot.recovered_at)
        return lot

    def update_lot(self, lot_id: int, payload: models.LotUpdate) -> models.Lot:
        """Applique une édition partielle du lot.

        Tous les contrôles précèdent la première écriture: un refus (409)
        laisse le lot inchangé, nom et détails compris.
        """

        fields = payload.model_fields_set
        lot = self.repository.get_lot(lot_id)
        finishing = payload.status == "finished" or payload.finished_at is not None
        recovering = payload.status == "recovered" or payload.recovered_at is not None
        if payload.status == "active" and lot.finished_at is not None:
            raise ConflictError(f"Le lot {lot_id} est terminé et ne peut pas être rouvert")
        if finishing:
            self._require_complete(lot_id)
        if recovering and not finishing and lot.finished_at is None:
            raise ConflictError("Le lot doit être terminé avant d'être marqué comme récupéré")

        if "lot_name" in fields:
            lot = self.repository.rename(lot_id, payload.lot_name)
        if "lot_details" in fields:
            lot = self.repository.set_details(lot_id, payload.lot_details)
        if finishing:
            lot = self.finish_lot(lot_id, payload.finished_at)
        if recovering:
            lot = self.recover_lot(lot_id, payload.recovered_at)
        return lot

    # Documents ------------------------------------------------------------

    def decode_document(self, pdf_base64: str) -> bytes:
        try:
            return base64.b64decode(pdf_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Contenu PDF base64 invalide") from exc

    def store_document(self, lot_id: int, pdf_bytes: Optional[bytes] = None) -> str:
        """Persiste le PDF d'un lot et met à jour ``pdf_path``.

        Sans contenu fourni, le serveur génère lui-même le rapport. Toute
        erreur laisse le ``pdf_path`` précédent en place.
        """

        lot = self.repository.get_lot(lot_id)
        if pdf_bytes is None:
            pdf_bytes = self.renderer.render(lot, self.clock()).pdf_bytes
        if not pdf_bytes.startswith(PDF_SIGNATURE):
            raise ValidationError("Le contenu fourni n'est pas un PDF")
        destination = lot_pdf_path(self.media_root, lot_id)
        write_bytes_atomic(destination, pdf_bytes)
        pdf_path = relative_to_media(self.media_root, destination)
        self.repository.set_pdf_path(lot_id, pdf_path)
        self.logger.info("[PDF] Document enregistré lot=%s path=%s size=%s", lot_id, pdf_path, len(pdf_bytes))
        return pdf_path

    def document_file(self, lot_id: int) -> Path:
        lot = self.repository.get_lot(lot_id)
        path = lot_pdf_path(self.media_root, lot_id)
        if not lot.pdf_path or not path.is_file():
            raise NotFoundError(f"Aucun PDF disponible pour le lot {lot_id}")
        return path

    def share_document(self, lot_id: int, request: models.EmailRequest) -> models.EmailResponse:
        """Prépare un lien de partage; aucun courriel n'est réellement envoyé."""

        lot = self.repository.get_lot(lot_id)
        pdf_path = lot.pdf_path or self.store_document(lot_id)
        link = f"{self.public_url}{pdf_path}"
        self.logger.info("[LOTS] Lien de partage lot=%s destinataire=%s", lot_id, request.recipient)
        return models.EmailResponse(recipient=request.recipient, link=link, message=request.message)
