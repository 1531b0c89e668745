"""Routes de gestion des lots de réception."""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from reception.api.auth import get_current_user
from reception.api.deps import get_lot_service, http_error
from reception.core import models
from reception.core.errors import ReceptionError
from reception.core.services import LotService
from reception.services.pdf.lot_report import PlaywrightPdfError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/pdf/diagnostics", response_model=models.PdfDiagnostics)
async def pdf_diagnostics(service: LotService = Depends(get_lot_service)) -> models.PdfDiagnostics:
    payload = await run_in_threadpool(service.renderer.diagnostics)
    return models.PdfDiagnostics(**payload)


@router.get("", response_model=models.LotListResponse)
async def list_lots(
    status: str = Query("all", description="active, finished ou all"),
    date_from: Optional[date] = Query(None, description="Terminés à partir de ce jour"),
    date_to: Optional[date] = Query(None, description="Terminés jusqu'à ce jour inclus"),
    service: LotService = Depends(get_lot_service),
) -> models.LotListResponse:
    try:
        lots = await run_in_threadpool(service.list_lots, status, date_from=date_from, date_to=date_to)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    return models.LotListResponse(items=lots)


@router.post("", response_model=models.LotCreated, status_code=201)
async def create_lot(
    payload: models.LotCreate,
    service: LotService = Depends(get_lot_service),
    _: models.User = Depends(get_current_user),
) -> models.LotCreated:
    try:
        return await run_in_threadpool(service.create_lot, payload)
    except ReceptionError as exc:
        raise http_error(exc) from exc


@router.api_route("/items/{item_id}", methods=["PUT", "PATCH"], response_model=models.ItemUpdateResult)
async def update_item(
    item_id: int,
    payload: models.LotItemUpdate,
    service: LotService = Depends(get_lot_service),
    _: models.User = Depends(get_current_user),
) -> models.ItemUpdateResult:
    try:
        return await run_in_threadpool(service.update_item, item_id, payload)
    except ReceptionError as exc:
        raise http_error(exc) from exc


@router.get("/{lot_id}", response_model=models.LotDetailResponse)
async def get_lot(lot_id: int, service: LotService = Depends(get_lot_service)) -> models.LotDetailResponse:
    try:
        lot = await run_in_threadpool(service.get_lot, lot_id)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    return models.LotDetailResponse(item=lot)


@router.api_route("/{lot_id}", methods=["PUT", "PATCH"], response_model=models.LotDetailResponse)
async def update_lot(
    lot_id: int,
    payload: models.LotUpdate,
    service: LotService = Depends(get_lot_service),
    _: models.User = Depends(get_current_user),
) -> models.LotDetailResponse:
    try:
        lot = await run_in_threadpool(service.update_lot, lot_id, payload)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    return models.LotDetailResponse(item=lot)


@router.post("/{lot_id}/pdf", response_model=models.PdfPathResponse)
async def store_pdf(
    lot_id: int,
    payload: models.PdfUpload | None = Body(default=None),
    service: LotService = Depends(get_lot_service),
    _: models.User = Depends(get_current_user),
) -> models.PdfPathResponse:
    try:
        pdf_bytes = service.decode_document(payload.pdf_base64) if payload and payload.pdf_base64 else None
        pdf_path = await run_in_threadpool(service.store_document, lot_id, pdf_bytes)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    except PlaywrightPdfError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except OSError as exc:
        logger.error("[PDF] Enregistrement impossible lot=%s: %s", lot_id, exc)
        raise HTTPException(status_code=500, detail="Impossible d'enregistrer le PDF") from exc
    return models.PdfPathResponse(pdf_path=pdf_path)


@router.get("/{lot_id}/pdf")
async def download_pdf(lot_id: int, service: LotService = Depends(get_lot_service)) -> FileResponse:
    try:
        path = await run_in_threadpool(service.document_file, lot_id)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    return FileResponse(path, media_type="application/pdf", filename=f"lot-{lot_id}.pdf")


@router.post("/{lot_id}/email", response_model=models.EmailResponse)
async def share_lot(
    lot_id: int,
    payload: models.EmailRequest,
    service: LotService = Depends(get_lot_service),
    _: models.User = Depends(get_current_user),
) -> models.EmailResponse:
    try:
        return await run_in_threadpool(service.share_document, lot_id, payload)
    except ReceptionError as exc:
        raise http_error(exc) from exc
    except PlaywrightPdfError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except OSError as exc:
        logger.error("[PDF] Partage impossible lot=%s: %s", lot_id, exc)
        raise HTTPException(status_code=500, detail="Impossible d'enregistrer le PDF") from exc
