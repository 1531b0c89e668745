"""Éditeur de saisie d'un lot: douchette, lignes manuelles, application groupée.

L'éditeur travaille sur des lignes en cours de saisie et ne parle jamais
au serveur: :meth:`IntakeEditor.build_payload` produit le ``LotCreate``
envoyé en une seule fois.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count
from typing import Callable, Iterable, Optional

from reception.core import models
from reception.core.errors import ConflictError, NotFoundError, ValidationError
from reception.core.lot_states import ITEM_TYPES

SCAN_TERMINATOR = "Enter"
SCAN_RESET_SECONDS = 0.1
SCAN_MIN_LENGTH = 4


class ScanBuffer:
    """Accumule les frappes rapides d'une douchette jusqu'à ``Entrée``.

    Une pause de plus de ``reset_after`` secondes entre deux frappes vide le
    tampon: une saisie clavier humaine n'est pas prise pour un scan.
    """

    def __init__(
        self,
        *,
        reset_after: float = SCAN_RESET_SECONDS,
        min_length: int = SCAN_MIN_LENGTH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reset_after = reset_after
        self.min_length = min_length
        self.clock = clock
        self._buffer = ""
        self._last_key_at: Optional[float] = None

    @property
    def pending(self) -> str:
        return self._buffer

    def reset(self) -> None:
        self._buffer = ""
        self._last_key_at = None

    def feed(self, key: str, at: Optional[float] = None) -> Optional[str]:
        """Ajoute une frappe; renvoie le numéro scanné quand il est complet."""

        at = self.clock() if at is None else at
        stale = self._last_key_at is not None and at - self._last_key_at > self.reset_after
        if key == SCAN_TERMINATOR:
            value = "" if stale else self._buffer.strip()
            self.reset()
            return value if len(value) >= self.min_length else None
        if len(key) != 1:
            return None
        if stale:
            self._buffer = ""
        self._buffer += key
        self._last_key_at = at
        return None


@dataclass
class IntakeRow:
    key: int
    entry_type: str
    serial_number: str = ""
    type: Optional[str] = None
    marque_id: Optional[int] = None
    modele_id: Optional[int] = None
    date: Optional[str] = None
    time: Optional[str] = None
    selected: bool = False

    @property
    def is_blank(self) -> bool:
        return not self.serial_number.strip()


@dataclass(frozen=True)
class IntakeNotice:
    level: str
    text: str


def _serial_key(serial: str) -> str:
    return serial.strip().casefold()


@dataclass
class IntakeEditor:
    catalog: list[models.MarqueWithModeles] = field(default_factory=list)
    default_type: Optional[str] = None
    clock: Callable[[], datetime] = datetime.now
    scan_buffer: ScanBuffer = field(default_factory=ScanBuffer)
    rows: list[IntakeRow] = field(default_factory=list)
    focused_key: Optional[int] = None

    def __post_init__(self) -> None:
        self._keys = count(1)
        self._modeles = {
            modele.id: modele for marque in self.catalog for modele in marque.modeles
        }
        self._marques = {marque.id: marque for marque in self.catalog}
        self._append_scan_row()

    # Lignes ---------------------------------------------------------------

    @property
    def filled_rows(self) -> list[IntakeRow]:
        return [row for row in self.rows if not row.is_blank]

    def row(self, key: int) -> IntakeRow:
        for row in self.rows:
            if row.key == key:
                return row
        raise NotFoundError(f"Ligne {key} introuvable")

    def _new_row(self, entry_type: str) -> IntakeRow:
        now = self.clock()
        return IntakeRow(
            key=next(self._keys),
            entry_type=entry_type,
            type=self.default_type,
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M:%S"),
        )

    def _append_scan_row(self) -> IntakeRow:
        row = self._new_row("scan")
        self.rows.append(row)
        self.focused_key = row.key
        return row

    def _standing_scan_row(self) -> Optional[IntakeRow]:
        for row in reversed(self.rows):
            if row.entry_type == "scan" and row.is_blank:
                return row
        return None

    def _find_duplicate(self, serial: str, *, ignore_key: Optional[int] = None) -> Optional[IntakeRow]:
        wanted = _serial_key(serial)
        for row in self.rows:
            if row.key != ignore_key and not row.is_blank and _serial_key(row.serial_number) == wanted:
                return row
        return None

    # Douchette ------------------------------------------------------------

    def handle_key(self, key: str, at: Optional[float] = None) -> Optional[IntakeNotice]:
        serial = self.scan_buffer.feed(key, at)
        if serial is None:
            return None
        return self.scan(serial)

    def scan(self, serial: str) -> IntakeNotice:
        """Enregistre un numéro scanné dans la ligne de scan en attente."""

        cleaned = serial.strip()
        if self._find_duplicate(cleaned) is not None:
            return IntakeNotice("warning", f"Le numéro de série {cleaned} est déjà présent dans ce lot")
        row = self._standing_scan_row() or self._append_scan_row()
        now = self.clock()
        row.serial_number = cleaned
        row.date = now.strftime("%Y-%m-%d")
        row.time = now.strftime("%H:%M:%S")
        self._append_scan_row()
        return IntakeNotice("success", f"{cleaned} ajouté")

    # Saisie manuelle ------------------------------------------------------

    def add_manual_row(
        self,
        serial_number: str = "",
        *,
        type: Optional[str] = None,
        marque_id: Optional[int] = None,
        modele_id: Optional[int] = None,
    ) -> IntakeRow:
        if serial_number.strip() and self._find_duplicate(serial_number) is not None:
            raise ConflictError(f"Le numéro de série {serial_number.strip()} est déjà présent dans ce lot")
        row = self._new_row("manual")
        row.serial_number = serial_number.strip()
        insert_at = len(self.rows)
        standing = self._standing_scan_row()
        if standing is not None and self.rows[-1] is standing:
            insert_at -= 1
        self.rows.insert(insert_at, row)
        if type is not None:
            self.set_type(row.key, type)
        if marque_id is not None:
            self.select_brand(row.key, marque_id)
        if modele_id is not None:
            self.select_model(row.key, modele_id)
        self.focused_key = row.key
        return row

    def set_serial(self, key: int, serial_number: str) -> None:
        cleaned = serial_number.strip()
        if cleaned and self._find_duplicate(cleaned, ignore_key=key) is not None:
            raise ConflictError(f"Le numéro de série {cleaned} est déjà présent dans ce lot")
        self.row(key).serial_number = cleaned

    def set_type(self, key: int, item_type: Optional[str]) -> None:
        if item_type is not None and item_type not in ITEM_TYPES:
            raise ValidationError(f"Type inconnu: {item_type}")
        self.row(key).type = item_type

    def remove_row(self, key: int) -> None:
        row = self.row(key)
        self.rows.remove(row)
        if self._standing_scan_row() is None:
            self._append_scan_row()
        elif self.focused_key == key:
            self.focused_key = self.rows[-1].key

    def set_selected(self, key: int, selected: bool = True) -> None:
        self.row(key).selected = selected

    # Marques / modèles ----------------------------------------------------

    def model_options(self, key: int) -> list[models.Modele]:
        """Modèles proposés pour la ligne: uniquement ceux de sa marque."""

        marque_id = self.row(key).marque_id
        if marque_id is None or marque_id not in self._marques:
            return []
        return list(self._marques[marque_id].modeles)

    def select_brand(self, key: int, marque_id: Optional[int]) -> None:
        row = self.row(key)
        if marque_id is not None and marque_id not in self._marques:
            raise ValidationError(f"Marque {marque_id} inconnue")
        row.marque_id = marque_id
        if row.modele_id is not None and not self._belongs(row.modele_id, marque_id):
            row.modele_id = None

    def select_model(self, key: int, modele_id: Optional[int]) -> None:
        row = self.row(key)
        if modele_id is not None and not self._belongs(modele_id, row.marque_id):
            raise ValidationError("Ce modèle n'appartient pas à la marque choisie")
        row.modele_id = modele_id

    def _belongs(self, modele_id: int, marque_id: Optional[int]) -> bool:
        modele = self._modeles.get(modele_id)
        return modele is not None and marque_id is not None and modele.marque_id == marque_id

    # Application groupée --------------------------------------------------

    def bulk_apply(
        self,
        *,
        type: Optional[str] = None,
        marque_id: Optional[int] = None,
        modele_id: Optional[int] = None,
        keys: Optional[Iterable[int]] = None,
    ) -> int:
        """Applique les valeurs non vides aux lignes sélectionnées.

        Renvoie le nombre de lignes modifiées.
        """

        # "" vaut "non fourni"
        type = type or None
        marque_id = marque_id or None
        modele_id = modele_id or None
        targets = [self.row(key) for key in keys] if keys is not None else [row for row in self.rows if row.selected]
        if not targets:
            return 0
        if type is not None and type not in ITEM_TYPES:
            raise ValidationError(f"Type inconnu: {type}")
        if marque_id is not None and marque_id not in self._marques:
            raise ValidationError(f"Marque {marque_id} inconnue")
        for row in targets:
            brand = marque_id if marque_id is not None else row.marque_id
            if modele_id is not None and not self._belongs(modele_id, brand):
                raise ValidationError("Ce modèle n'appartient pas à la marque choisie")
        for row in targets:
            if type is not None:
                row.type = type
            if marque_id is not None:
                self.select_brand(row.key, marque_id)
            if modele_id is not None:
                row.modele_id = modele_id
        return len(targets)

    # Envoi ----------------------------------------------------------------

    def build_payload(self, lot_name: Optional[str] = None, lot_details: Optional[str] = None) -> models.LotCreate:
        """Valide les lignes remplies et construit la requête de création."""

        rows = self.filled_rows
        if not rows:
            raise ValidationError("Aucun élément à enregistrer")
        missing = [str(index) for index, row in enumerate(rows, start=1) if not row.type]
        if missing:
            raise ValidationError(f"Type manquant pour la ou les lignes {', '.join(missing)}")
        items = [
            models.LotItemInput(
                serial_number=row.serial_number,
                type=row.type,
                marque_id=row.marque_id,
                modele_id=row.modele_id,
                entry_type=row.entry_type,
                date=row.date,
                time=row.time,
            )
            for row in rows
        ]
        return models.LotCreate(items=items, lot_name=lot_name, lot_details=lot_details)

    def clear(self) -> None:
        self.rows.clear()
        self.scan_buffer.reset()
        self._append_scan_row()
