"""Évaluation de l'achèvement d'un lot.

Cette fonction pure est l'unique source de vérité sur l'état d'un lot:
le serveur l'utilise avant de persister ``finished_at`` et le client la
rejoue sur la liste d'éléments qu'il vient de récupérer.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from reception.core.lot_states import (
    STATE_FOR_PARTS,
    STATE_OUT_OF_ORDER,
    STATE_RECONDITIONED,
    SUMMARY_ORDER,
    normalize_state,
    state_label,
)

logger = logging.getLogger(__name__)

_COUNTER_FIELDS = ("total", "pending", "recond", "pieces", "hs", "undefined")


@dataclass(frozen=True)
class LotCompletion:
    total: int = 0
    pending: int = 0
    recond: int = 0
    pieces: int = 0
    hs: int = 0
    undefined: int = 0

    @property
    def complete(self) -> bool:
        return self.total > 0 and self.pending == 0

    @property
    def status(self) -> str:
        return "finished" if self.complete else "active"

    def count_for(self, state: Optional[str]) -> int:
        if state == STATE_RECONDITIONED:
            return self.recond
        if state == STATE_FOR_PARTS:
            return self.pieces
        if state == STATE_OUT_OF_ORDER:
            return self.hs
        return self.undefined

    def summary_cards(self) -> list[tuple[str, int]]:
        """Cartes de synthèse dans l'ordre d'affichage fixe."""

        return [(state_label(state), self.count_for(state)) for state in SUMMARY_ORDER]

    def as_counters(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in _COUNTER_FIELDS}


def _read(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _item_state(item: Any) -> Optional[str]:
    try:
        return normalize_state(_read(item, "state"))
    except ValueError:
        return None


def is_item_complete(item: Any) -> bool:
    technician = _read(item, "technician")
    has_technician = isinstance(technician, str) and bool(technician.strip())
    return _item_state(item) is not None and has_technician


def evaluate(items: Iterable[Any]) -> LotCompletion:
    """Calcule les compteurs d'un lot à partir de ses éléments.

    Un élément est en attente si son état n'est pas défini ou si aucun
    technicien n'est renseigné. Un lot sans élément n'est jamais terminé.
    """

    total = pending = recond = pieces = hs = undefined = 0
    for item in items:
        total += 1
        state = _item_state(item)
        if not is_item_complete(item):
            pending += 1
        if state == STATE_RECONDITIONED:
            recond += 1
        elif state == STATE_FOR_PARTS:
            pieces += 1
        elif state == STATE_OUT_OF_ORDER:
            hs += 1
        else:
            undefined += 1
    return LotCompletion(
        total=total,
        pending=pending,
        recond=recond,
        pieces=pieces,
        hs=hs,
        undefined=undefined,
    )


def matches_status(completion: LotCompletion, status: str) -> bool:
    if status == "all":
        return True
    if status == "finished":
        return completion.complete
    return not completion.complete


def reconcile(summary: Any, items: Iterable[Any]) -> Any:
    """Remplace les compteurs dénormalisés d'un résumé par leur recalcul.

    Le résumé peut être un modèle Pydantic ou un dictionnaire; une copie
    est renvoyée. En cas d'écart la valeur recalculée l'emporte.
    """

    recomputed = evaluate(items).as_counters()
    mismatches = {
        name: (_read(summary, name), value)
        for name, value in recomputed.items()
        if _read(summary, name) is not None and _read(summary, name) != value
    }
    if mismatches:
        logger.warning(
            "[LOTS] Compteurs obsolètes pour le lot %s: %s",
            _read(summary, "id"),
            ", ".join(f"{name} {old}->{new}" for name, (old, new) in sorted(mismatches.items())),
        )
    if isinstance(summary, Mapping):
        return {**summary, **recomputed}
    return summary.model_copy(update=recomputed)
