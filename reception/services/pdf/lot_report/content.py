"""Contenu logique du rapport de lot, partagé par les deux moteurs de rendu."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from reception.core import models
from reception.core.completion import evaluate
from reception.core.lot_states import SUMMARY_ORDER, item_type_label, state_label

EMPTY_VALUE = "-"

COLUMN_HEADERS: tuple[str, ...] = (
    "N°",
    "Numéro de série",
    "Type",
    "Marque",
    "Modèle",
    "Date",
    "État",
    "Technicien",
)


@dataclass(frozen=True)
class ReportRow:
    number: int
    serial_number: str
    type_label: str
    marque: str
    modele: str
    date: str
    state_label: str
    technician: str

    def cells(self) -> tuple[str, ...]:
        return (
            str(self.number),
            self.serial_number,
            self.type_label,
            self.marque,
            self.modele,
            self.date,
            self.state_label,
            self.technician,
        )


@dataclass(frozen=True)
class LotReportContent:
    lot_id: int
    title: str
    details: Optional[str]
    created_at: str
    finished_at: str
    recovered_at: str
    generated_at: str
    total: int
    cards: tuple[tuple[str, int], ...]
    rows: tuple[ReportRow, ...]

    def header_lines(self) -> list[tuple[str, str]]:
        return [
            ("Lot", f"#{self.lot_id}"),
            ("Créé le", self.created_at),
            ("Terminé le", self.finished_at),
            ("Récupéré le", self.recovered_at),
        ]


def _text(value: Optional[str]) -> str:
    if value is None:
        return EMPTY_VALUE
    trimmed = value.strip()
    return trimmed if trimmed else EMPTY_VALUE


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return EMPTY_VALUE
    return value.strftime("%d/%m/%Y %H:%M")


def format_capture(date_value: Optional[str], time_value: Optional[str]) -> str:
    """Date de saisie ``AAAA-MM-JJ`` (+ heure) affichée au format français."""

    if not date_value:
        return EMPTY_VALUE
    try:
        label = datetime.strptime(date_value, "%Y-%m-%d").strftime("%d/%m/%Y")
    except ValueError:
        label = date_value
    if time_value:
        label = f"{label} {time_value[:5]}"
    return label


def lot_title(lot: models.LotSummary) -> str:
    return lot.lot_name.strip() if lot.lot_name and lot.lot_name.strip() else f"Lot #{lot.id}"


def build_rows(items: Iterable[models.LotItem]) -> tuple[ReportRow, ...]:
    return tuple(
        ReportRow(
            number=index,
            serial_number=_text(item.serial_number),
            type_label=_text(item_type_label(item.type)),
            marque=_text(item.marque_name),
            modele=_text(item.modele_name),
            date=format_capture(item.date, item.time),
            state_label=state_label(item.state),
            technician=_text(item.technician),
        )
        for index, item in enumerate(items, start=1)
    )


def build_report_content(lot: models.Lot, generated_at: datetime) -> LotReportContent:
    completion = evaluate(lot.items)
    return LotReportContent(
        lot_id=lot.id,
        title=lot_title(lot),
        details=lot.lot_details.strip() if lot.lot_details and lot.lot_details.strip() else None,
        created_at=format_datetime(lot.created_at),
        finished_at=format_datetime(lot.finished_at),
        recovered_at=format_datetime(lot.recovered_at),
        generated_at=format_datetime(generated_at),
        total=completion.total,
        cards=tuple(completion.summary_cards()),
        rows=build_rows(lot.items),
    )


def counts_from_rows(rows: Iterable[ReportRow]) -> list[tuple[str, int]]:
    """Recompte les cartes de synthèse à partir des lignes rendues."""

    counter = Counter(row.state_label for row in rows)
    return [(state_label(state), counter.get(state_label(state), 0)) for state in SUMMARY_ORDER]
