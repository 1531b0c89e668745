"""Dépôt en mémoire, utilisé pour les démonstrations et les tests.

Il respecte le même contrat que le dépôt SQLite: mêmes erreurs, mêmes
règles d'idempotence, création de lot tout-ou-rien.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from itertools import count
from threading import RLock
from typing import Optional

from reception.core import models
from reception.core.completion import evaluate, matches_status
from reception.core.errors import ConflictError, NotFoundError, ValidationError
from reception.core.repositories import (
    build_summary,
    capture_stamp,
    finished_within,
    require_name,
    validate_date_range,
    validate_lot_payload,
    validate_status,
)

logger = logging.getLogger(__name__)


@dataclass
class _LotRecord:
    id: int
    created_at: datetime
    lot_name: Optional[str] = None
    lot_details: Optional[str] = None
    finished_at: Optional[datetime] = None
    recovered_at: Optional[datetime] = None
    pdf_path: Optional[str] = None

    def __getitem__(self, key: str) -> object:
        return getattr(self, key)


@dataclass
class _ItemRecord:
    id: int
    lot_id: int
    serial_number: str
    type: str
    marque_id: Optional[int]
    modele_id: Optional[int]
    entry_type: str
    date: str
    time: str
    created_at: datetime
    state: Optional[str] = None
    technician: Optional[str] = None
    state_changed_at: Optional[datetime] = None


@dataclass
class _Catalog:
    marques: dict[int, str] = field(default_factory=dict)
    modeles: dict[int, tuple[int, str]] = field(default_factory=dict)


class MemoryLotStore:
    """Implémentation volatile des dépôts de lots et de référence."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._lots: dict[int, _LotRecord] = {}
        self._items: dict[int, _ItemRecord] = {}
        self._catalog = _Catalog()
        self._lot_ids = count(1)
        self._item_ids = count(1)
        self._marque_ids = count(1)
        self._modele_ids = count(1)

    # Données de référence -------------------------------------------------

    def list_marques(self) -> list[models.Marque]:
        with self._lock:
            entries = sorted(self._catalog.marques.items(), key=lambda entry: entry[1].casefold())
        return [models.Marque(id=marque_id, name=name) for marque_id, name in entries]

    def list_modeles(self, marque_id: int) -> list[models.Modele]:
        with self._lock:
            if marque_id not in self._catalog.marques:
                raise NotFoundError(f"Marque {marque_id} introuvable")
            entries = [
                models.Modele(id=modele_id, name=name, marque_id=owner)
                for modele_id, (owner, name) in self._catalog.modeles.items()
                if owner == marque_id
            ]
        return sorted(entries, key=lambda modele: modele.name.casefold())

    def list_marques_with_modeles(self) -> list[models.MarqueWithModeles]:
        return [
            models.MarqueWithModeles(id=marque.id, name=marque.name, modeles=self.list_modeles(marque.id))
            for marque in self.list_marques()
        ]

    def create_marque(self, name: str) -> models.Marque:
        cleaned = require_name(name)
        with self._lock:
            if any(existing.casefold() == cleaned.casefold() for existing in self._catalog.marques.values()):
                raise ConflictError(f"La marque '{cleaned}' existe déjà")
            marque_id = next(self._marque_ids)
            self._catalog.marques[marque_id] = cleaned
        logger.info("[MARQUES] Marque créée id=%s name=%s", marque_id, cleaned)
        return models.Marque(id=marque_id, name=cleaned)

    def create_modele(self, marque_id: int, name: str) -> models.Modele:
        cleaned = require_name(name)
        with self._lock:
            if marque_id not in self._catalog.marques:
                raise NotFoundError(f"Marque {marque_id} introuvable")
            for owner, existing in self._catalog.modeles.values():
                if owner == marque_id and existing.casefold() == cleaned.casefold():
                    raise ConflictError(f"Le modèle '{cleaned}' existe déjà pour cette marque")
            modele_id = next(self._modele_ids)
            self._catalog.modeles[modele_id] = (marque_id, cleaned)
        logger.info("[MARQUES] Modèle créé id=%s marque_id=%s name=%s", modele_id, marque_id, cleaned)
        return models.Modele(id=modele_id, name=cleaned, marque_id=marque_id)

    # Lots -----------------------------------------------------------------

    def create_lot(self, payload: models.LotCreate, *, now: datetime) -> models.LotCreated:
        validate_lot_payload(payload)
        created_at = now.replace(microsecond=0)
        with self._lock:
            for item in payload.items:
                self._check_reference(item.marque_id, item.modele_id)
            lot_id = next(self._lot_ids)
            records = []
            for item in payload.items:
                item_date, item_time = capture_stamp(item, now)
                records.append(
                    _ItemRecord(
                        id=next(self._item_ids),
                        lot_id=lot_id,
                        serial_number=item.serial_number,
                        type=item.type,
                        marque_id=item.marque_id,
                        modele_id=item.modele_id,
                        entry_type=item.entry_type,
                        date=item_date,
                        time=item_time,
                        created_at=created_at,
                        state=item.state,
                        technician=item.technician,
                        state_changed_at=created_at if item.state else None,
                    )
                )
            self._lots[lot_id] = _LotRecord(
                id=lot_id,
                created_at=created_at,
                lot_name=payload.lot_name,
                lot_details=payload.lot_details,
            )
            self._items.update({record.id: record for record in records})
        return models.LotCreated(id=lot_id, total=len(records))

    def get_lot(self, lot_id: int) -> models.Lot:
        with self._lock:
            lot = self._require_lot(lot_id)
            items = self._lot_items(lot_id)
            return models.Lot(**build_summary(lot, items), items=items)

    def get_item(self, item_id: int) -> models.LotItem:
        with self._lock:
            record = self._items.get(item_id)
            if record is None:
                raise NotFoundError(f"Élément {item_id} introuvable")
            return self._to_model(record)

    def list_items(self, lot_id: int) -> list[models.LotItem]:
        with self._lock:
            self._require_lot(lot_id)
            return self._lot_items(lot_id)

    def list_lots(
        self, status: str = "all", *, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[models.LotSummary]:
        status = validate_status(status)
        validate_date_range(date_from, date_to)
        with self._lock:
            lots = sorted(self._lots.values(), key=lambda lot: (lot.created_at, lot.id), reverse=True)
            summaries = []
            for lot in lots:
                items = [record for record in self._items.values() if record.lot_id == lot.id]
                if not matches_status(evaluate(items), status):
                    continue
                summary = models.LotSummary(**build_summary(lot, items))
                if finished_within(summary.finished_at, date_from, date_to):
                    summaries.append(summary)
        return summaries

    def update_item(
        self, item_id: int, changes: models.LotItemUpdate, *, now: datetime
    ) -> models.LotItem:
        provided = changes.model_fields_set & {"state", "technician"}
        with self._lock:
            record = self._items.get(item_id)
            if record is None:
                raise NotFoundError(f"Élément {item_id} introuvable")
            updates: dict[str, object] = {name: getattr(changes, name) for name in provided}
            if "state" in provided and record.state != changes.state:
                updates["state_changed_at"] = now.replace(microsecond=0)
            self._items[item_id] = replace(record, **updates)
            return self._to_model(self._items[item_id])

    def mark_finished(self, lot_id: int, finished_at: datetime) -> models.Lot:
        with self._lock:
            lot = self._require_lot(lot_id)
            if lot.finished_at is None:
                lot.finished_at = finished_at.replace(microsecond=0)
            return self.get_lot(lot_id)

    def mark_recovered(self, lot_id: int, recovered_at: datetime) -> models.Lot:
        with self._lock:
            lot = self._require_lot(lot_id)
            if lot.finished_at is None:
                raise ConflictError("Le lot doit être terminé avant d'être marqué comme récupéré")
            if lot.recovered_at is None:
                lot.recovered_at = recovered_at.replace(microsecond=0)
            return self.get_lot(lot_id)

    def rename(self, lot_id: int, name: Optional[str]) -> models.Lot:
        return self._set_lot_field(lot_id, "lot_name", name)

    def set_details(self, lot_id: int, details: Optional[str]) -> models.Lot:
        return self._set_lot_field(lot_id, "lot_details", details)

    def set_pdf_path(self, lot_id: int, path: str) -> models.Lot:
        return self._set_lot_field(lot_id, "pdf_path", path)

    def delete_lot(self, lot_id: int) -> None:
        with self._lock:
            self._require_lot(lot_id)
            del self._lots[lot_id]
            self._items = {key: record for key, record in self._items.items() if record.lot_id != lot_id}

    # Outils internes ------------------------------------------------------

    def _set_lot_field(self, lot_id: int, name: str, value: Optional[str]) -> models.Lot:
        with self._lock:
            setattr(self._require_lot(lot_id), name, value)
            return self.get_lot(lot_id)

    def _require_lot(self, lot_id: int) -> _LotRecord:
        lot = self._lots.get(lot_id)
        if lot is None:
            raise NotFoundError(f"Lot {lot_id} introuvable")
        return lot

    def _lot_items(self, lot_id: int) -> list[models.LotItem]:
        records = sorted(
            (record for record in self._items.values() if record.lot_id == lot_id),
            key=lambda record: record.id,
        )
        return [self._to_model(record) for record in records]

    def _to_model(self, record: _ItemRecord) -> models.LotItem:
        modele = self._catalog.modeles.get(record.modele_id) if record.modele_id is not None else None
        return models.LotItem(
            id=record.id,
            lot_id=record.lot_id,
            serial_number=record.serial_number,
            type=record.type,
            marque_id=record.marque_id,
            modele_id=record.modele_id,
            marque_name=self._catalog.marques.get(record.marque_id) if record.marque_id is not None else None,
            modele_name=modele[1] if modele else None,
            entry_type=record.entry_type,
            date=record.date,
            time=record.time,
            state=record.state,
            technician=record.technician,
            state_changed_at=record.state_changed_at,
            created_at=record.created_at,
        )

    def _check_reference(self, marque_id: Optional[int], modele_id: Optional[int]) -> None:
        if marque_id is not None and marque_id not in self._catalog.marques:
            raise ValidationError(f"Marque {marque_id} inconnue")
        if modele_id is not None:
            modele = self._catalog.modeles.get(modele_id)
            if modele is None:
                raise ValidationError(f"Modèle {modele_id} inconnu")
            if modele[0] != marque_id:
                raise ValidationError(f"Le modèle {modele_id} n'appartient pas à la marque {marque_id}")
