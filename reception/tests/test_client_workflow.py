from __future__ import annotations

import asyncio
from datetime import date, datetime

import httpx
import pytest

from reception.client.api_client import ReceptionApiClient, TransientError
from reception.client.intake import IntakeEditor
from reception.client.workflow import build_workflow, to_user_message
from reception.core import models
from reception.core.completion import evaluate
from reception.core.errors import ConflictError, NotFoundError
from reception.tests.helpers import ADMIN_PASSWORD, COMPLETION_CASES, item_input

BASE_URL = "http://testserver"


@pytest.fixture()
def transport(app) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=app)


async def _login(transport: httpx.AsyncBaseTransport) -> str:
    api = ReceptionApiClient(BASE_URL, transport=transport)
    return await api.login("admin", ADMIN_PASSWORD)


def test_submit_complete_and_archive(backend_settings, transport) -> None:
    async def scenario():
        token = await _login(transport)
        workflow = build_workflow(backend_settings, token=token, transport=transport)
        dell = await workflow.api.create_marque("Dell")
        await workflow.api.create_modele(dell.id, "Latitude 5490")
        editor = IntakeEditor(catalog=await workflow.api.list_marques_with_modeles(), default_type="portable")
        editor.scan("SN-001")
        editor.add_manual_row("SN-002", marque_id=dell.id)

        submitted = await workflow.submit(editor, "Lot Mairie", "Carton 3")
        outcomes = []
        for item in submitted.lot.items:
            outcomes.append(await workflow.edit_item(item.id, state="Reconditionnés", technician="Alice"))
        stored = await workflow.api.get_lot(submitted.lot.id)
        document = await workflow.api.download_pdf(submitted.lot.id)
        return editor, submitted, outcomes, stored, document

    editor, submitted, outcomes, stored, document = asyncio.run(scenario())

    assert submitted.ok
    assert submitted.completion.pending == 2
    assert submitted.finished_now is False
    assert editor.filled_rows == []
    assert outcomes[0].finished_now is False
    assert outcomes[0].completion.pending == 1

    final = outcomes[-1]
    assert final.ok, final.message
    assert final.finished_now is True
    assert final.completion.complete is True
    assert final.archive.local_path.is_file()
    assert final.archive.local_path.is_relative_to(backend_settings.ARCHIVE_ROOT)
    assert final.archive.local_path.name.startswith("Lot_Mairie_")
    assert final.lot.pdf_path == f"/media/pdfs/lot-{submitted.lot.id}.pdf"
    assert stored.finished_at is not None
    assert stored.pdf_path == final.lot.pdf_path
    assert document == final.archive.local_path.read_bytes()


def test_edit_item_clears_with_empty_string(backend_settings, transport) -> None:
    async def scenario():
        token = await _login(transport)
        workflow = build_workflow(backend_settings, token=token, transport=transport)
        editor = IntakeEditor(default_type="fixe")
        editor.scan("SN-001")
        editor.scan("SN-002")
        submitted = await workflow.submit(editor)
        item_id = submitted.lot.items[0].id
        await workflow.edit_item(item_id, state="HS", technician="Bob")
        cleared = await workflow.edit_item(item_id, technician="")
        untouched = await workflow.edit_item(item_id)
        return cleared, untouched

    cleared, untouched = asyncio.run(scenario())

    item = cleared.lot.items[0]
    assert (item.state, item.technician) == ("HS", None)
    assert untouched.lot.items[0].state == "HS"
    assert cleared.finished_now is False


def test_workflow_reports_errors_as_messages(backend_settings, transport) -> None:
    async def scenario():
        token = await _login(transport)
        workflow = build_workflow(backend_settings, token=token, transport=transport)
        missing = await workflow.edit_item(999, state="HS")
        empty = await workflow.submit(IntakeEditor(default_type="portable"))
        unknown_state = await workflow.edit_item(1, state="Cassé")
        editor = IntakeEditor(default_type="portable")
        editor.scan("SN-001")
        submitted = await workflow.submit(editor)
        recovered_early = await workflow.recover(submitted.lot.id)
        return missing, empty, unknown_state, recovered_early

    missing, empty, unknown_state, recovered_early = asyncio.run(scenario())

    assert (missing.message.level, missing.message.retry) == ("error", True)
    assert missing.message.text.startswith("Introuvable")
    assert empty.message.text == "Aucun élément à enregistrer"
    assert unknown_state.ok is False
    assert recovered_early.message.level == "warning"


def test_upload_failure_can_be_retried(backend_settings, transport) -> None:
    async def refuse(lot_id: int, pdf_bytes: bytes) -> str:
        raise TransientError("Serveur injoignable")

    async def scenario():
        token = await _login(transport)
        workflow = build_workflow(backend_settings, token=token, transport=transport)
        editor = IntakeEditor(default_type="ecran")
        editor.scan("SN-001")
        submitted = await workflow.submit(editor, "Lot écrans")
        upload = workflow.archiver.upload
        workflow.archiver.upload = refuse
        failed = await workflow.regenerate(submitted.lot.id)
        workflow.archiver.upload = upload
        retried = await workflow.retry_upload(submitted.lot.id, failed.pending_upload)
        stored = await workflow.api.get_lot(submitted.lot.id)
        return failed, retried, stored

    failed, retried, stored = asyncio.run(scenario())

    assert failed.message.level == "warning"
    assert failed.message.retry is True
    assert failed.pending_upload.is_file()
    assert retried.ok
    assert stored.pdf_path == retried.archive.pdf_path


def test_health_check(transport) -> None:
    assert asyncio.run(ReceptionApiClient(BASE_URL, transport=transport).check_health()) is True


def test_health_check_gives_up_when_offline() -> None:
    attempts = []

    def refuse(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url.path)
        raise httpx.ConnectError("connexion refusée", request=request)

    api = ReceptionApiClient(
        BASE_URL,
        transport=httpx.MockTransport(refuse),
        health_retries=2,
        health_backoff=0.01,
    )

    assert asyncio.run(api.check_health()) is False
    assert attempts == ["/health", "/health"]


def test_client_maps_status_codes(transport) -> None:
    async def scenario():
        token = await _login(transport)
        api = ReceptionApiClient(BASE_URL, token=token, transport=transport)
        with pytest.raises(NotFoundError):
            await api.get_lot(404)
        await api.create_marque("Dell")
        with pytest.raises(ConflictError) as excinfo:
            await api.create_marque("dell")
        return excinfo.value

    conflict = asyncio.run(scenario())

    assert to_user_message(conflict).level == "warning"


@pytest.mark.parametrize("states, expected_pending, expected_complete", COMPLETION_CASES)
def test_server_and_client_agree_on_completion(
    app, transport, states, expected_pending, expected_complete
) -> None:
    async def scenario():
        token = await _login(transport)
        api = ReceptionApiClient(BASE_URL, token=token, transport=transport)
        created = await api.create_lot(_payload(states))
        async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as raw:
            detail = (await raw.get(f"/lots/{created.id}")).json()["item"]
            finished = (await raw.get("/lots", params={"status": "finished"})).json()["items"]
        lot = await api.get_lot(created.id)
        return created.id, detail, finished, lot

    lot_id, detail, finished, lot = asyncio.run(scenario())
    client_side = evaluate(lot.items)

    assert detail["pending"] == client_side.pending == expected_pending
    assert client_side.complete is expected_complete
    assert (lot_id in [entry["id"] for entry in finished]) is expected_complete


def _payload(states) -> models.LotCreate:
    return models.LotCreate(
        items=[
            models.LotItemInput(serial_number=f"SN-{index:03d}", type="portable", state=state, technician=technician)
            for index, (state, technician) in enumerate(states, start=1)
        ]
    )


def test_history_filters_on_finish_day(transport) -> None:
    async def scenario():
        api = ReceptionApiClient(BASE_URL, transport=transport)
        await api.login("admin", ADMIN_PASSWORD)
        created = await api.create_lot(models.LotCreate(items=[item_input("SN-001")]))
        await api.create_lot(models.LotCreate(items=[item_input("SN-002")]))
        lot = await api.get_lot(created.id)
        await api.update_item(lot.items[0].id, models.LotItemUpdate(state="HS", technician="Alice"))
        await api.finish_lot(created.id, datetime(2024, 3, 14, 23, 30))
        same_day = await api.list_lots("all", date_from=date(2024, 3, 14), date_to=date(2024, 3, 14))
        after = await api.list_lots("finished", date_from=date(2024, 3, 15))
        return created, same_day, after

    created, same_day, after = asyncio.run(scenario())

    assert [lot.id for lot in same_day] == [created.id]
    assert after == []
