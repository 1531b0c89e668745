from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from fastapi.testclient import TestClient

from reception.app import create_app
from reception.core.config import Settings
from reception.core.memory_store import MemoryLotStore
from reception.core.sqlite_store import SqliteLotStore
from reception.tests.helpers import ADMIN_PASSWORD


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        LOTS_BACKEND="sqlite",
        DATA_DIR=tmp_path / "data",
        MEDIA_ROOT=tmp_path / "media",
        LOG_DIR=tmp_path / "logs",
        ARCHIVE_ROOT=tmp_path / "archive",
        PDF_RENDERER="reportlab",
        JWT_SECRET="test-secret",
        DEFAULT_ADMIN_PASSWORD=ADMIN_PASSWORD,
        PUBLIC_URL="http://reception.test",
        SERVER_URL="http://testserver",
        HEALTH_BACKOFF_SECONDS=0.01,
    )


@pytest.fixture(params=["sqlite", "memory"])
def backend_settings(request: pytest.FixtureRequest, test_settings: Settings) -> Settings:
    return test_settings.with_overrides(LOTS_BACKEND=request.param)


@pytest.fixture()
def app(backend_settings: Settings):
    return create_app(backend_settings, configure_logs=False)


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def auth_headers(client: TestClient) -> dict[str, str]:
    response = client.post("/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture(params=["sqlite", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "sqlite":
        return SqliteLotStore(tmp_path / "lots.db")
    return MemoryLotStore()


@pytest.fixture()
def now() -> datetime:
    return datetime(2024, 3, 14, 9, 30, 0)

