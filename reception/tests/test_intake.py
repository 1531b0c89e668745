from __future__ import annotations

from datetime import datetime

import pytest

from reception.client.intake import IntakeEditor, ScanBuffer
from reception.core import models
from reception.core.errors import ConflictError, ValidationError

CAPTURED_AT = datetime(2024, 3, 14, 10, 20, 30)


@pytest.fixture()
def catalog() -> list[models.MarqueWithModeles]:
    return [
        models.MarqueWithModeles(id=1, name="Dell", modeles=[models.Modele(id=10, name="Latitude 5490", marque_id=1)]),
        models.MarqueWithModeles(id=2, name="HP", modeles=[models.Modele(id=20, name="EliteBook 840", marque_id=2)]),
    ]


@pytest.fixture()
def editor(catalog) -> IntakeEditor:
    return IntakeEditor(catalog=catalog, default_type="portable", clock=lambda: CAPTURED_AT)


def _type_fast(buffer: ScanBuffer, text: str, start: float = 0.0, step: float = 0.01):
    result = None
    at = start
    for key in list(text) + ["Enter"]:
        result = buffer.feed(key, at)
        at += step
    return result


def test_scan_buffer_returns_fast_sequences() -> None:
    buffer = ScanBuffer()

    assert _type_fast(buffer, "SN-001") == "SN-001"
    assert buffer.pending == ""


def test_scan_buffer_resets_after_pause() -> None:
    buffer = ScanBuffer()
    buffer.feed("X", 0.0)
    buffer.feed("Y", 0.05)

    assert _type_fast(buffer, "SN-002", start=1.0) == "SN-002"


def test_scan_buffer_drops_stale_buffer_on_late_enter() -> None:
    buffer = ScanBuffer()
    for index, key in enumerate("SN-001"):
        buffer.feed(key, index * 0.01)

    assert buffer.feed("Enter", 0.5) is None
    assert buffer.pending == ""
    assert _type_fast(buffer, "SN-002", start=1.0) == "SN-002"


def test_scan_buffer_ignores_short_and_special_keys() -> None:
    buffer = ScanBuffer()

    assert _type_fast(buffer, "ab") is None
    buffer.feed("Shift", 0.0)
    buffer.feed("A", 0.01)
    assert buffer.pending == "A"


def test_editor_starts_with_focused_scan_row(editor: IntakeEditor) -> None:
    (row,) = editor.rows

    assert row.entry_type == "scan"
    assert row.is_blank
    assert editor.focused_key == row.key
    assert editor.filled_rows == []


def test_scan_fills_standing_row_and_opens_next(editor: IntakeEditor) -> None:
    notice = editor.scan(" SN-001 ")

    filled, standing = editor.rows
    assert notice.level == "success"
    assert (filled.serial_number, filled.type, filled.date, filled.time) == ("SN-001", "portable", "2024-03-14", "10:20:30")
    assert standing.is_blank and standing.entry_type == "scan"
    assert editor.focused_key == standing.key


def test_duplicate_scan_is_rejected(editor: IntakeEditor) -> None:
    editor.scan("SN-001")

    notice = editor.scan("sn-001")

    assert notice.level == "warning"
    assert len(editor.filled_rows) == 1
    assert len(editor.rows) == 2


def test_key_events_drive_scanning(editor: IntakeEditor) -> None:
    notices = [editor.handle_key(key, index * 0.01) for index, key in enumerate(list("SN-777") + ["Enter"])]

    assert notices[:-1] == [None] * 6
    assert notices[-1].level == "success"
    assert [row.serial_number for row in editor.filled_rows] == ["SN-777"]


def test_manual_rows_go_before_standing_scan_row(editor: IntakeEditor) -> None:
    editor.scan("SN-001")
    manual = editor.add_manual_row("SN-100", type="ecran", marque_id=1, modele_id=10)

    assert [row.entry_type for row in editor.rows] == ["scan", "manual", "scan"]
    assert editor.rows[-1].is_blank
    assert editor.focused_key == manual.key
    assert (manual.type, manual.marque_id, manual.modele_id) == ("ecran", 1, 10)
    with pytest.raises(ConflictError):
        editor.add_manual_row("sn-001")
    with pytest.raises(ConflictError):
        editor.set_serial(manual.key, "SN-001")


def test_model_options_follow_brand(editor: IntakeEditor) -> None:
    row = editor.add_manual_row("SN-1")

    assert editor.model_options(row.key) == []
    editor.select_brand(row.key, 1)
    assert [modele.id for modele in editor.model_options(row.key)] == [10]

    editor.select_model(row.key, 10)
    with pytest.raises(ValidationError):
        editor.select_model(row.key, 20)

    editor.select_brand(row.key, 2)
    assert row.modele_id is None
    with pytest.raises(ValidationError):
        editor.select_brand(row.key, 99)


def test_bulk_apply_on_selection(editor: IntakeEditor) -> None:
    first = editor.add_manual_row("SN-1")
    second = editor.add_manual_row("SN-2")
    third = editor.add_manual_row("SN-3", type="fixe")
    editor.set_selected(first.key)
    editor.set_selected(second.key)

    changed = editor.bulk_apply(type="ecran", marque_id=2, modele_id=20)

    assert changed == 2
    assert [(row.type, row.marque_id, row.modele_id) for row in (first, second)] == [("ecran", 2, 20)] * 2
    assert (third.type, third.marque_id) == ("fixe", None)
    with pytest.raises(ValidationError):
        editor.bulk_apply(marque_id=1, modele_id=20, keys=[third.key])
    assert third.marque_id is None
    assert editor.bulk_apply(type="ecran", keys=[]) == 0


def test_bulk_apply_skips_empty_values(editor: IntakeEditor) -> None:
    row = editor.add_manual_row("SN-1")
    editor.set_selected(row.key)

    assert editor.bulk_apply(type="", marque_id=1) == 1
    assert (row.type, row.marque_id, row.modele_id) == ("portable", 1, None)

    assert editor.bulk_apply(type="fixe", marque_id=None, modele_id=None) == 1
    assert (row.type, row.marque_id) == ("fixe", 1)


def test_remove_row_keeps_a_scan_row(editor: IntakeEditor) -> None:
    (standing,) = editor.rows

    editor.remove_row(standing.key)

    assert len(editor.rows) == 1
    assert editor.rows[0].is_blank and editor.rows[0].key != standing.key


def test_build_payload(editor: IntakeEditor) -> None:
    editor.scan("SN-001")
    editor.add_manual_row("SN-002", marque_id=1, modele_id=10)

    payload = editor.build_payload(" Lot Mairie ", "")

    assert [item.serial_number for item in payload.items] == ["SN-001", "SN-002"]
    assert [item.entry_type for item in payload.items] == ["scan", "manual"]
    assert payload.items[1].modele_id == 10
    assert payload.lot_name == "Lot Mairie"
    assert payload.lot_details is None


def test_build_payload_validation(catalog) -> None:
    editor = IntakeEditor(catalog=catalog, clock=lambda: CAPTURED_AT)

    with pytest.raises(ValidationError):
        editor.build_payload()

    editor.scan("SN-001")
    with pytest.raises(ValidationError, match="ligne"):
        editor.build_payload()

    editor.set_type(editor.filled_rows[0].key, "autres")
    assert editor.build_payload().items[0].type == "autres"
    with pytest.raises(ValidationError):
        editor.set_type(editor.filled_rows[0].key, "tablette")


def test_clear_resets_rows(editor: IntakeEditor) -> None:
    editor.scan("SN-001")

    editor.clear()

    assert len(editor.rows) == 1
    assert editor.filled_rows == []
