"""Contrats des dépôts de lots et de données de référence.

Deux implémentations existent (SQLite et mémoire); le reste de
l'application ne dépend que des protocoles définis ici.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Optional, Protocol

from reception.core import models
from reception.core.completion import evaluate
from reception.core.errors import ConflictError, ValidationError
from reception.core.lot_states import LOT_STATUSES, normalize_state


class ReferenceDataRepository(Protocol):
    def list_marques(self) -> list[models.Marque]: ...

    def list_marques_with_modeles(self) -> list[models.MarqueWithModeles]: ...

    def list_modeles(self, marque_id: int) -> list[models.Modele]: ...

    def create_marque(self, name: str) -> models.Marque: ...

    def create_modele(self, marque_id: int, name: str) -> models.Modele: ...


class LotRepository(Protocol):
    def create_lot(self, payload: models.LotCreate, *, now: datetime) -> models.LotCreated: ...

    def get_lot(self, lot_id: int) -> models.Lot: ...

    def get_item(self, item_id: int) -> models.LotItem: ...

    def list_items(self, lot_id: int) -> list[models.LotItem]: ...

    def list_lots(
        self, status: str = "all", *, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[models.LotSummary]: ...

    def update_item(
        self, item_id: int, changes: models.LotItemUpdate, *, now: datetime
    ) -> models.LotItem: ...

    def mark_finished(self, lot_id: int, finished_at: datetime) -> models.Lot: ...

    def mark_recovered(self, lot_id: int, recovered_at: datetime) -> models.Lot: ...

    def rename(self, lot_id: int, name: Optional[str]) -> models.Lot: ...

    def set_details(self, lot_id: int, details: Optional[str]) -> models.Lot: ...

    def set_pdf_path(self, lot_id: int, path: str) -> models.Lot: ...

    def delete_lot(self, lot_id: int) -> None: ...


def validate_status(status: str) -> str:
    normalized = (status or "all").strip().lower()
    if normalized not in LOT_STATUSES:
        raise ValidationError(f"Statut de lot inconnu: {status}")
    return normalized


def validate_date_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValidationError(f"Période invalide: {date_from} est postérieur à {date_to}")


def finished_within(finished_at: Optional[datetime], date_from: Optional[date], date_to: Optional[date]) -> bool:
    """Filtre de l'historique: ``date_to`` inclut toute la journée."""

    if date_from is None and date_to is None:
        return True
    if finished_at is None:
        return False
    day = finished_at.date()
    if date_from is not None and day < date_from:
        return False
    return date_to is None or day <= date_to


def validate_lot_payload(payload: models.LotCreate) -> None:
    """Contrôles communs avant toute écriture d'un nouveau lot."""

    if not payload.items:
        raise ValidationError("Un lot doit contenir au moins un élément")
    seen: set[str] = set()
    for item in payload.items:
        key = item.serial_number.strip().casefold()
        if key in seen:
            raise ConflictError(f"Numéro de série en double dans le lot: {item.serial_number}")
        seen.add(key)
        if item.modele_id is not None and item.marque_id is None:
            raise ValidationError("Un modèle ne peut être choisi sans sa marque")


def capture_stamp(item: models.LotItemInput, now: datetime) -> tuple[str, str]:
    """Date et heure de saisie, complétées avec l'instant de création."""

    return item.date or now.strftime("%Y-%m-%d"), item.time or now.strftime("%H:%M:%S")


def build_summary(lot: Mapping[str, Any], items: Iterable[Any]) -> dict[str, Any]:
    """Assemble un résumé de lot dont les compteurs sont recalculés."""

    payload = {
        "id": lot["id"],
        "created_at": lot["created_at"],
        "finished_at": lot["finished_at"],
        "recovered_at": lot["recovered_at"],
        "lot_name": lot["lot_name"],
        "lot_details": lot["lot_details"],
        "pdf_path": lot["pdf_path"],
    }
    payload.update(evaluate(items).as_counters())
    return payload


def serialize_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat()


def require_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Le nom est requis")
    return cleaned


def stored_state(value: object) -> Optional[str]:
    """État persisté ramené à sa forme canonique, ``None`` s'il est illisible."""

    try:
        return normalize_state(value)
    except ValueError:
        return None
