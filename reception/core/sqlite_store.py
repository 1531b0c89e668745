"""Dépôt SQLite des lots, de leurs éléments et des marques/modèles."""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from reception.core import db, models
from reception.core.completion import matches_status, evaluate
from reception.core.errors import ConflictError, NotFoundError, ValidationError
from reception.core.repositories import (
    build_summary,
    capture_stamp,
    finished_within,
    require_name,
    serialize_timestamp,
    stored_state,
    validate_date_range,
    validate_lot_payload,
    validate_status,
)

logger = logging.getLogger(__name__)

_ITEM_SELECT = """
    SELECT li.*, m.name AS marque_name, mo.name AS modele_name
    FROM lot_items AS li
    LEFT JOIN marques AS m ON m.id = li.marque_id
    LEFT JOIN modeles AS mo ON mo.id = li.modele_id
"""


class SqliteLotStore:
    """Implémentation relationnelle des dépôts de lots et de référence."""

    def __init__(self, path: Path) -> None:
        self.path = path
        db.init_database(path, db.LOTS_SCHEMA)

    # Données de référence -------------------------------------------------

    def list_marques(self) -> list[models.Marque]:
        with db.get_connection(self.path) as conn:
            rows = conn.execute("SELECT id, name FROM marques ORDER BY name COLLATE NOCASE").fetchall()
        return [models.Marque(id=row["id"], name=row["name"]) for row in rows]

    def list_modeles(self, marque_id: int) -> list[models.Modele]:
        with db.get_connection(self.path) as conn:
            self._require_marque(conn, marque_id)
            rows = conn.execute(
                "SELECT id, name, marque_id FROM modeles WHERE marque_id = ? ORDER BY name COLLATE NOCASE",
                (marque_id,),
            ).fetchall()
        return [models.Modele(**dict(row)) for row in rows]

    def list_marques_with_modeles(self) -> list[models.MarqueWithModeles]:
        with db.get_connection(self.path) as conn:
            marques = conn.execute("SELECT id, name FROM marques ORDER BY name COLLATE NOCASE").fetchall()
            modeles = conn.execute(
                "SELECT id, name, marque_id FROM modeles ORDER BY name COLLATE NOCASE"
            ).fetchall()
        grouped: dict[int, list[models.Modele]] = defaultdict(list)
        for row in modeles:
            grouped[row["marque_id"]].append(models.Modele(**dict(row)))
        return [
            models.MarqueWithModeles(id=row["id"], name=row["name"], modeles=grouped.get(row["id"], []))
            for row in marques
        ]

    def create_marque(self, name: str) -> models.Marque:
        cleaned = require_name(name)
        try:
            with db.write_transaction(self.path) as conn:
                cur = conn.execute("INSERT INTO marques (name) VALUES (?)", (cleaned,))
                marque_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"La marque '{cleaned}' existe déjà") from exc
        logger.info("[MARQUES] Marque créée id=%s name=%s", marque_id, cleaned)
        return models.Marque(id=marque_id, name=cleaned)

    def create_modele(self, marque_id: int, name: str) -> models.Modele:
        cleaned = require_name(name)
        try:
            with db.write_transaction(self.path) as conn:
                self._require_marque(conn, marque_id)
                cur = conn.execute(
                    "INSERT INTO modeles (marque_id, name) VALUES (?, ?)",
                    (marque_id, cleaned),
                )
                modele_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Le modèle '{cleaned}' existe déjà pour cette marque") from exc
        logger.info("[MARQUES] Modèle créé id=%s marque_id=%s name=%s", modele_id, marque_id, cleaned)
        return models.Modele(id=modele_id, name=cleaned, marque_id=marque_id)

    # Lots -----------------------------------------------------------------

    def create_lot(self, payload: models.LotCreate, *, now: datetime) -> models.LotCreated:
        validate_lot_payload(payload)
        created_at = serialize_timestamp(now)
        try:
            with db.write_transaction(self.path) as conn:
                for item in payload.items:
                    self._check_reference(conn, item.marque_id, item.modele_id)
                cur = conn.execute(
                    "INSERT INTO lots (created_at, lot_name, lot_details) VALUES (?, ?, ?)",
                    (created_at, payload.lot_name, payload.lot_details),
                )
                lot_id = cur.lastrowid
                for item in payload.items:
                    item_date, item_time = capture_stamp(item, now)
                    conn.execute(
                        """
                        INSERT INTO lot_items (
                            lot_id, serial_number, type, marque_id, modele_id, entry_type,
                            date, time, state, technician, state_changed_at, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            lot_id,
                            item.serial_number,
                            item.type,
                            item.marque_id,
                            item.modele_id,
                            item.entry_type,
                            item_date,
                            item_time,
                            item.state,
                            item.technician,
                            created_at if item.state else None,
                            created_at,
                        ),
                    )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Création du lot impossible: {exc}") from exc
        return models.LotCreated(id=lot_id, total=len(payload.items))

    def get_lot(self, lot_id: int) -> models.Lot:
        with db.get_connection(self.path) as conn:
            lot = self._require_lot(conn, lot_id)
            items = self._fetch_items(conn, lot_id)
        return models.Lot(**build_summary(lot, items), items=items)

    def get_item(self, item_id: int) -> models.LotItem:
        with db.get_connection(self.path) as conn:
            row = conn.execute(f"{_ITEM_SELECT} WHERE li.id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Élément {item_id} introuvable")
        return models.LotItem(**dict(row))

    def list_items(self, lot_id: int) -> list[models.LotItem]:
        with db.get_connection(self.path) as conn:
            self._require_lot(conn, lot_id)
            return self._fetch_items(conn, lot_id)

    def list_lots(
        self, status: str = "all", *, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[models.LotSummary]:
        status = validate_status(status)
        validate_date_range(date_from, date_to)
        with db.get_connection(self.path) as conn:
            lots = conn.execute("SELECT * FROM lots ORDER BY created_at DESC, id DESC").fetchall()
            item_rows = conn.execute("SELECT lot_id, state, technician FROM lot_items").fetchall()
        items_by_lot: dict[int, list[dict[str, object]]] = defaultdict(list)
        for row in item_rows:
            items_by_lot[row["lot_id"]].append({"state": row["state"], "technician": row["technician"]})
        summaries: list[models.LotSummary] = []
        for lot in lots:
            lot_items = items_by_lot.get(lot["id"], [])
            if not matches_status(evaluate(lot_items), status):
                continue
            summary = models.LotSummary(**build_summary(lot, lot_items))
            if finished_within(summary.finished_at, date_from, date_to):
                summaries.append(summary)
        return summaries

    def update_item(
        self, item_id: int, changes: models.LotItemUpdate, *, now: datetime
    ) -> models.LotItem:
        provided = changes.model_fields_set & {"state", "technician"}
        if provided:
            with db.write_transaction(self.path) as conn:
                row = conn.execute("SELECT state FROM lot_items WHERE id = ?", (item_id,)).fetchone()
                if row is None:
                    raise NotFoundError(f"Élément {item_id} introuvable")
                assignments: list[str] = []
                values: list[object] = []
                for field_name in sorted(provided):
                    assignments.append(f"{field_name} = ?")
                    values.append(getattr(changes, field_name))
                if "state" in provided and stored_state(row["state"]) != changes.state:
                    assignments.append("state_changed_at = ?")
                    values.append(serialize_timestamp(now))
                values.append(item_id)
                conn.execute(f"UPDATE lot_items SET {', '.join(assignments)} WHERE id = ?", values)
        return self.get_item(item_id)

    def mark_finished(self, lot_id: int, finished_at: datetime) -> models.Lot:
        with db.write_transaction(self.path) as conn:
            cur = conn.execute(
                "UPDATE lots SET finished_at = COALESCE(finished_at, ?) WHERE id = ?",
                (serialize_timestamp(finished_at), lot_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Lot {lot_id} introuvable")
        return self.get_lot(lot_id)

    def mark_recovered(self, lot_id: int, recovered_at: datetime) -> models.Lot:
        with db.write_transaction(self.path) as conn:
            lot = self._require_lot(conn, lot_id)
            if lot["finished_at"] is None:
                raise ConflictError("Le lot doit être terminé avant d'être marqué comme récupéré")
            conn.execute(
                "UPDATE lots SET recovered_at = COALESCE(recovered_at, ?) WHERE id = ?",
                (serialize_timestamp(recovered_at), lot_id),
            )
        return self.get_lot(lot_id)

    def rename(self, lot_id: int, name: Optional[str]) -> models.Lot:
        return self._update_lot_field(lot_id, "lot_name", name)

    def set_details(self, lot_id: int, details: Optional[str]) -> models.Lot:
        return self._update_lot_field(lot_id, "lot_details", details)

    def set_pdf_path(self, lot_id: int, path: str) -> models.Lot:
        return self._update_lot_field(lot_id, "pdf_path", path)

    def delete_lot(self, lot_id: int) -> None:
        with db.write_transaction(self.path) as conn:
            cur = conn.execute("DELETE FROM lots WHERE id = ?", (lot_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Lot {lot_id} introuvable")

    # Outils internes ------------------------------------------------------

    def _update_lot_field(self, lot_id: int, column: str, value: Optional[str]) -> models.Lot:
        with db.write_transaction(self.path) as conn:
            cur = conn.execute(f"UPDATE lots SET {column} = ? WHERE id = ?", (value, lot_id))
            if cur.rowcount == 0:
                raise NotFoundError(f"Lot {lot_id} introuvable")
        return self.get_lot(lot_id)

    @staticmethod
    def _fetch_items(conn: sqlite3.Connection, lot_id: int) -> list[models.LotItem]:
        rows = conn.execute(f"{_ITEM_SELECT} WHERE li.lot_id = ? ORDER BY li.id", (lot_id,)).fetchall()
        return [models.LotItem(**dict(row)) for row in rows]

    @staticmethod
    def _require_lot(conn: sqlite3.Connection, lot_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM lots WHERE id = ?", (lot_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Lot {lot_id} introuvable")
        return row

    @staticmethod
    def _require_marque(conn: sqlite3.Connection, marque_id: int) -> None:
        row = conn.execute("SELECT 1 FROM marques WHERE id = ?", (marque_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Marque {marque_id} introuvable")

    @staticmethod
    def _check_reference(
        conn: sqlite3.Connection, marque_id: Optional[int], modele_id: Optional[int]
    ) -> None:
        if marque_id is not None:
            row = conn.execute("SELECT 1 FROM marques WHERE id = ?", (marque_id,)).fetchone()
            if row is None:
                raise ValidationError(f"Marque {marque_id} inconnue")
        if modele_id is not None:
            row = conn.execute("SELECT marque_id FROM modeles WHERE id = ?", (modele_id,)).fetchone()
            if row is None:
                raise ValidationError(f"Modèle {modele_id} inconnu")
            if row["marque_id"] != marque_id:
                raise ValidationError(f"Le modèle {modele_id} n'appartient pas à la marque {marque_id}")

