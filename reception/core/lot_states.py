"""Valeurs fermées manipulées par les lots."""
from __future__ import annotations

from typing import Literal, Optional

STATE_RECONDITIONED = "Reconditionnés"
STATE_FOR_PARTS = "Pour pièces"
STATE_OUT_OF_ORDER = "HS"

ITEM_STATES: tuple[str, ...] = (STATE_RECONDITIONED, STATE_FOR_PARTS, STATE_OUT_OF_ORDER)

# Valeur par défaut historique de la colonne, équivalente à "non défini".
LEGACY_PENDING_STATE = "À faire"

UNDEFINED_LABEL = "Non défini"

STATE_LABELS: dict[str, str] = {
    STATE_RECONDITIONED: "Reconditionné(s)",
    STATE_FOR_PARTS: "Pour pièces",
    STATE_OUT_OF_ORDER: "HS",
}

# Ordre d'affichage des cartes de synthèse.
SUMMARY_ORDER: tuple[Optional[str], ...] = (
    STATE_RECONDITIONED,
    STATE_FOR_PARTS,
    STATE_OUT_OF_ORDER,
    None,
)

ItemType = Literal["portable", "fixe", "ecran", "autres"]
EntryType = Literal["scan", "manual"]
LotStatus = Literal["active", "finished", "all"]

ITEM_TYPES: tuple[str, ...] = ("portable", "fixe", "ecran", "autres")
ENTRY_TYPES: tuple[str, ...] = ("scan", "manual")
LOT_STATUSES: tuple[str, ...] = ("active", "finished", "all")

ITEM_TYPE_LABELS: dict[str, str] = {
    "portable": "Portable",
    "fixe": "Fixe",
    "ecran": "Écran",
    "autres": "Autres",
}


def normalize_state(value: object) -> Optional[str]:
    """Ramène un état reçu du réseau à une valeur canonique ou ``None``.

    Les chaînes vides et l'ancienne valeur ``"À faire"`` signifient
    "non défini". Toute autre valeur inconnue est refusée.
    """

    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"État invalide: {value!r}")
    normalized = value.strip()
    if not normalized or normalized == LEGACY_PENDING_STATE:
        return None
    if normalized not in ITEM_STATES:
        raise ValueError(f"État invalide: {value}")
    return normalized


def normalize_text(value: object) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def state_label(state: Optional[str]) -> str:
    if not state:
        return UNDEFINED_LABEL
    return STATE_LABELS.get(state, UNDEFINED_LABEL)


def item_type_label(item_type: Optional[str]) -> str:
    if not item_type:
        return ""
    return ITEM_TYPE_LABELS.get(item_type, item_type)
