from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from reception.core import db, models
from reception.core.errors import ConflictError, NotFoundError, ValidationError
from reception.core.sqlite_store import SqliteLotStore
from reception.tests.helpers import item_input


def _create(store, now: datetime, *serials: str, **item_fields) -> models.LotCreated:
    payload = models.LotCreate(items=[item_input(serial, **item_fields) for serial in serials], lot_name="Lot test")
    return store.create_lot(payload, now=now)


def _complete_all(store, lot_id: int, now: datetime) -> None:
    for item in store.list_items(lot_id):
        store.update_item(
            item.id,
            models.LotItemUpdate(state="Reconditionnés", technician="Alice"),
            now=now,
        )


def test_create_lot_returns_id_and_total(store, now: datetime) -> None:
    created = _create(store, now, "SN-1", "SN-2", "SN-3")

    lot = store.get_lot(created.id)
    assert created.total == 3
    assert [item.serial_number for item in lot.items] == ["SN-1", "SN-2", "SN-3"]
    assert lot.created_at == now
    assert lot.finished_at is None
    assert lot.pending == 3
    assert all(item.date == "2024-03-14" and item.time == "09:30:00" for item in lot.items)


def test_create_lot_rejects_empty_items(store, now: datetime) -> None:
    with pytest.raises(ValidationError):
        store.create_lot(models.LotCreate(items=[]), now=now)
    assert store.list_lots("all") == []


def test_create_lot_rejects_duplicate_serials(store, now: datetime) -> None:
    with pytest.raises(ConflictError):
        _create(store, now, "SN-1", " sn-1 ")
    assert store.list_lots("all") == []


def test_create_lot_is_atomic_on_bad_reference(store, now: datetime) -> None:
    dell = store.create_marque("Dell")
    hp = store.create_marque("HP")
    elitebook = store.create_modele(hp.id, "EliteBook")
    payload = models.LotCreate(
        items=[
            item_input("SN-1", marque_id=dell.id),
            item_input("SN-2", marque_id=dell.id, modele_id=elitebook.id),
        ]
    )

    with pytest.raises(ValidationError):
        store.create_lot(payload, now=now)
    assert store.list_lots("all") == []


def test_items_carry_reference_names(store, now: datetime) -> None:
    dell = store.create_marque("Dell")
    latitude = store.create_modele(dell.id, "Latitude 5490")
    created = _create(store, now, "SN-1", marque_id=dell.id, modele_id=latitude.id)

    item = store.get_lot(created.id).items[0]

    assert item.marque_name == "Dell"
    assert item.modele_name == "Latitude 5490"


def test_update_item_only_changes_provided_fields(store, now: datetime) -> None:
    created = _create(store, now, "SN-1")
    item_id = store.list_items(created.id)[0].id
    later = now + timedelta(minutes=5)

    updated = store.update_item(item_id, models.LotItemUpdate(technician="Alice"), now=later)
    assert updated.technician == "Alice"
    assert updated.state is None
    assert updated.state_changed_at is None

    updated = store.update_item(item_id, models.LotItemUpdate(state="HS"), now=later)
    assert updated.state == "HS"
    assert updated.technician == "Alice"
    assert updated.state_changed_at == later


def test_update_item_keeps_state_stamp_when_state_unchanged(store, now: datetime) -> None:
    created = _create(store, now, "SN-1")
    item_id = store.list_items(created.id)[0].id
    first = now + timedelta(minutes=1)
    store.update_item(item_id, models.LotItemUpdate(state="HS"), now=first)

    updated = store.update_item(item_id, models.LotItemUpdate(state="HS", technician="Bob"), now=first + timedelta(hours=1))

    assert updated.state_changed_at == first


def test_update_unknown_item_is_not_found(store, now: datetime) -> None:
    with pytest.raises(NotFoundError):
        store.update_item(999, models.LotItemUpdate(state="HS"), now=now)
    with pytest.raises(NotFoundError):
        store.get_item(999)
    with pytest.raises(NotFoundError):
        store.get_lot(999)
    with pytest.raises(NotFoundError):
        store.list_items(999)


def test_list_lots_filters_with_recomputed_status(store, now: datetime) -> None:
    active = _create(store, now, "SN-1", "SN-2")
    finished = _create(store, now + timedelta(minutes=1), "SN-3")
    _complete_all(store, finished.id, now)

    assert [lot.id for lot in store.list_lots("active")] == [active.id]
    assert [lot.id for lot in store.list_lots("finished")] == [finished.id]
    assert [lot.id for lot in store.list_lots("all")] == [finished.id, active.id]
    assert store.list_lots("active")[0].pending == 2


def test_list_lots_rejects_unknown_status(store) -> None:
    with pytest.raises(ValidationError):
        store.list_lots("archived")


def test_list_lots_filters_by_finish_day(store, now: datetime) -> None:
    early = _create(store, now, "SN-1")
    late = _create(store, now + timedelta(minutes=1), "SN-2")
    _create(store, now + timedelta(minutes=2), "SN-3")
    for created, finished_at in ((early, datetime(2024, 3, 10, 9, 0)), (late, datetime(2024, 3, 14, 23, 59, 59))):
        _complete_all(store, created.id, now)
        store.mark_finished(created.id, finished_at)

    assert [lot.id for lot in store.list_lots("all", date_to=date(2024, 3, 14))] == [late.id, early.id]
    assert [lot.id for lot in store.list_lots("finished", date_from=date(2024, 3, 11))] == [late.id]
    assert store.list_lots("active", date_from=date(2024, 3, 1)) == []
    assert len(store.list_lots("all")) == 3
    with pytest.raises(ValidationError):
        store.list_lots("all", date_from=date(2024, 3, 15), date_to=date(2024, 3, 14))


def test_mark_finished_is_idempotent(store, now: datetime) -> None:
    created = _create(store, now, "SN-1")
    first = now + timedelta(hours=1)

    store.mark_finished(created.id, first)
    lot = store.mark_finished(created.id, first + timedelta(days=1))

    assert lot.finished_at == first


def test_mark_recovered_requires_finished(store, now: datetime) -> None:
    created = _create(store, now, "SN-1")

    with pytest.raises(ConflictError):
        store.mark_recovered(created.id, now)
    assert store.get_lot(created.id).recovered_at is None

    store.mark_finished(created.id, now)
    recovered_at = now + timedelta(hours=2)
    store.mark_recovered(created.id, recovered_at)
    lot = store.mark_recovered(created.id, recovered_at + timedelta(hours=1))
    assert lot.recovered_at == recovered_at


def test_rename_details_and_pdf_path(store, now: datetime) -> None:
    created = _create(store, now, "SN-1")

    store.rename(created.id, "Lot renommé")
    store.set_details(created.id, "Don de la mairie")
    lot = store.set_pdf_path(created.id, "/media/pdfs/lot-1.pdf")

    assert lot.lot_name == "Lot renommé"
    assert lot.lot_details == "Don de la mairie"
    assert lot.pdf_path == "/media/pdfs/lot-1.pdf"
    with pytest.raises(NotFoundError):
        store.rename(999, "x")


def test_delete_lot_removes_items(store, now: datetime) -> None:
    created = _create(store, now, "SN-1", "SN-2")
    item_id = store.list_items(created.id)[0].id

    store.delete_lot(created.id)

    with pytest.raises(NotFoundError):
        store.get_lot(created.id)
    with pytest.raises(NotFoundError):
        store.get_item(item_id)


def test_marques_are_unique_case_insensitively(store) -> None:
    store.create_marque("Dell")

    with pytest.raises(ConflictError):
        store.create_marque("dell")
    with pytest.raises(ValidationError):
        store.create_marque("   ")
    assert [marque.name for marque in store.list_marques()] == ["Dell"]


def test_modeles_are_unique_within_their_marque(store) -> None:
    dell = store.create_marque("Dell")
    hp = store.create_marque("HP")
    store.create_modele(dell.id, "Optiplex")

    with pytest.raises(ConflictError):
        store.create_modele(dell.id, "OPTIPLEX")
    store.create_modele(hp.id, "Optiplex")
    with pytest.raises(NotFoundError):
        store.create_modele(999, "X")
    with pytest.raises(NotFoundError):
        store.list_modeles(999)

    catalog = {marque.name: [modele.name for modele in marque.modeles] for marque in store.list_marques_with_modeles()}
    assert catalog == {"Dell": ["Optiplex"], "HP": ["Optiplex"]}


def test_sqlite_lot_without_items_has_empty_list(tmp_path, now: datetime) -> None:
    store = SqliteLotStore(tmp_path / "lots.db")
    with db.write_transaction(store.path) as conn:
        cur = conn.execute("INSERT INTO lots (created_at) VALUES (?)", (now.isoformat(),))
        lot_id = cur.lastrowid

    lot = store.get_lot(lot_id)

    assert lot.items == []
    assert lot.total == 0
    assert [summary.id for summary in store.list_lots("active")] == [lot_id]


def test_sqlite_legacy_state_is_normalised(tmp_path, now: datetime) -> None:
    store = SqliteLotStore(tmp_path / "lots.db")
    created = store.create_lot(models.LotCreate(items=[item_input("SN-1")]), now=now)
    with db.write_transaction(store.path) as conn:
        conn.execute("UPDATE lot_items SET state = 'À faire', technician = '' WHERE lot_id = ?", (created.id,))

    item = store.list_items(created.id)[0]

    assert item.state is None
    assert item.technician is None
