"""Routes du catalogue marques / modèles."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from reception.api.auth import get_current_user
from reception.api.deps import get_reference_data, http_error
from reception.core import models
from reception.core.errors import ReceptionError
from reception.core.repositories import ReferenceDataRepository

router = APIRouter()


@router.get("", response_model=list[models.Marque])
async def list_marques(
    reference: ReferenceDataRepository = Depends(get_reference_data),
) -> list[models.Marque]:
    return await run_in_threadpool(reference.list_marques)


@router.get("/all", response_model=list[models.MarqueWithModeles])
async def list_marques_with_modeles(
    reference: ReferenceDataRepository = Depends(get_reference_data),
) -> list[models.MarqueWithModeles]:
    return await run_in_threadpool(reference.list_marques_with_modeles)


@router.get("/{marque_id}/modeles", response_model=list[models.Modele])
async def list_modeles(
    marque_id: int,
    reference: ReferenceDataRepository = Depends(get_reference_data),
) -> list[models.Modele]:
    try:
        return await run_in_threadpool(reference.list_modeles, marque_id)
    except ReceptionError as exc:
        raise http_error(exc) from exc


@router.post("", response_model=models.Marque, status_code=201)
async def create_marque(
    payload: models.MarqueCreate,
    reference: ReferenceDataRepository = Depends(get_reference_data),
    _: models.User = Depends(get_current_user),
) -> models.Marque:
    try:
        return await run_in_threadpool(reference.create_marque, payload.name)
    except ReceptionError as exc:
        raise http_error(exc) from exc


@router.post("/{marque_id}/modeles", response_model=models.Modele, status_code=201)
async def create_modele(
    marque_id: int,
    payload: models.ModeleCreate,
    reference: ReferenceDataRepository = Depends(get_reference_data),
    _: models.User = Depends(get_current_user),
) -> models.Modele:
    try:
        return await run_in_threadpool(reference.create_modele, marque_id, payload.name)
    except ReceptionError as exc:
        raise http_error(exc) from exc
