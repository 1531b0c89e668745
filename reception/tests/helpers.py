from __future__ import annotations

from datetime import datetime

from reception.core import models

ADMIN_PASSWORD = "admin123"


def item_input(serial: str, **fields) -> models.LotItemInput:
    fields.setdefault("type", "portable")
    return models.LotItemInput(serial_number=serial, **fields)


def make_lot(
    *,
    lot_id: int = 7,
    lot_name: str | None = "Lot Mairie",
    states: list[tuple[str | None, str | None]] | None = None,
    finished_at: datetime | None = None,
) -> models.Lot:
    """Lot en mémoire pour les tests de rendu et d'archivage."""

    states = states if states is not None else [
        ("Reconditionnés", "Alice"),
        ("Pour pièces", "Bob"),
        ("HS", "Alice"),
    ]
    items = [
        models.LotItem(
            id=index,
            lot_id=lot_id,
            serial_number=f"SN-{index:03d}",
            type="portable" if index % 2 else "ecran",
            marque_name="Dell",
            modele_name="Latitude 5490",
            entry_type="scan",
            date="2024-03-14",
            time="09:15:00",
            state=state,
            technician=technician,
        )
        for index, (state, technician) in enumerate(states, start=1)
    ]
    return models.Lot(
        id=lot_id,
        created_at=datetime(2024, 3, 14, 9, 0, 0),
        finished_at=finished_at,
        lot_name=lot_name,
        items=items,
    )


# Jeux d'éléments partagés par les tests de l'évaluateur côté serveur et côté client:
# (état, technicien) par élément, puis (en attente, terminé) attendus.
COMPLETION_CASES: list[tuple[list[tuple[str | None, str | None]], int, bool]] = [
    ([(None, None), (None, None), (None, None)], 3, False),
    ([("Reconditionnés", "Alice"), (None, None), (None, None)], 2, False),
    ([("Reconditionnés", "Alice"), ("HS", "   "), ("Pour pièces", "Bob")], 1, False),
    ([(None, "Alice"), ("HS", "Bob")], 1, False),
    ([("Reconditionnés", "Alice"), ("Pour pièces", "Bob"), ("HS", "Alice")], 0, True),
]
