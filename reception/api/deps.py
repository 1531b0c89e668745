"""Dépendances FastAPI partagées par les routeurs."""
from __future__ import annotations

from fastapi import HTTPException, Request

from reception.core.config import Settings
from reception.core.errors import ReceptionError
from reception.core.repositories import ReferenceDataRepository
from reception.core.services import LotService
from reception.core.users import UserStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lot_service(request: Request) -> LotService:
    return request.app.state.lot_service


def get_reference_data(request: Request) -> ReferenceDataRepository:
    return request.app.state.reference_data


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def http_error(exc: ReceptionError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
