"""Application FastAPI du service de réception des lots."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from reception.api import auth, lots, marques
from reception.core import models
from reception.core.config import Settings, settings as default_settings
from reception.core.logging_config import configure_logging
from reception.core.memory_store import MemoryLotStore
from reception.core.services import LotService
from reception.core.sqlite_store import SqliteLotStore
from reception.core.users import UserStore
from reception.services.pdf.lot_report import LotReportRenderer
from reception.services.pdf.lot_report.playwright_support import maybe_install_chromium_on_startup

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> SqliteLotStore | MemoryLotStore:
    if settings.LOTS_BACKEND == "memory":
        return MemoryLotStore()
    return SqliteLotStore(settings.lots_db_path)


def create_app(settings: Optional[Settings] = None, *, configure_logs: bool = True) -> FastAPI:
    settings = settings or default_settings
    if configure_logs:
        configure_logging(settings.LOG_DIR, debug=settings.RECEPTION_DEBUG)

    settings.MEDIA_ROOT.mkdir(parents=True, exist_ok=True)
    store = build_store(settings)
    renderer = LotReportRenderer(settings.PDF_RENDERER, settings.PDF_TEMPLATE_PATH)

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        await run_in_threadpool(maybe_install_chromium_on_startup, settings.PDF_RENDERER)
        yield

    app = FastAPI(title="Réception API", version="1.0.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.reference_data = store
    app.state.lot_service = LotService(
        store,
        renderer=renderer,
        media_root=settings.MEDIA_ROOT,
        public_url=settings.PUBLIC_URL,
        logger=logging.getLogger("reception.lots"),
    )
    app.state.user_store = UserStore(
        settings.users_db_path,
        default_admin_password=settings.DEFAULT_ADMIN_PASSWORD,
    )

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.CORS_ORIGINS),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(lots.router, prefix="/lots", tags=["lots"])
    app.include_router(marques.router, prefix="/marques", tags=["marques"])
    app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT), name="media")

    @app.get("/health", tags=["health"], response_model=models.HealthResponse)
    async def healthcheck() -> models.HealthResponse:
        return models.HealthResponse(status="ok", backend=settings.LOTS_BACKEND)

    logger.info(
        "[LOTS] Application prête backend=%s renderer=%s archive=%s",
        settings.LOTS_BACKEND,
        settings.PDF_RENDERER,
        settings.ARCHIVE_ROOT or "indisponible",
    )
    return app
