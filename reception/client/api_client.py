"""Client HTTP asynchrone du service de réception."""
from __future__ import annotations

import asyncio
import base64
import logging
from datetime import date, datetime
from typing import Any, Optional

import httpx

from reception.core import models
from reception.core.completion import reconcile
from reception.core.errors import ReceptionError, error_for_status

logger = logging.getLogger(__name__)


class TransientError(ReceptionError):
    """Échec réseau ou délai dépassé; l'opération peut être relancée."""

    code = "transient"
    status_code = 503


class ReceptionApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        upload_timeout: float = 30.0,
        health_timeout: float = 3.0,
        health_retries: int = 3,
        health_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.health_timeout = health_timeout
        self.health_retries = health_retries
        self.health_backoff = health_backoff
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, *, timeout: Optional[float] = None, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client(timeout or self.timeout) as client:
                response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise error_for_status(exc.response.status_code, _error_detail(exc.response)) from exc
        except httpx.TimeoutException as exc:
            raise TransientError(f"Délai dépassé pour {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"Serveur injoignable ({method} {path})") from exc
        return response

    # Connexion ------------------------------------------------------------

    async def check_health(self) -> bool:
        """Vérifie la disponibilité du serveur avec un nombre borné d'essais."""

        for attempt in range(1, self.health_retries + 1):
            try:
                await self._request("GET", "/health", timeout=self.health_timeout)
                return True
            except ReceptionError as exc:
                logger.debug("[CLIENT] Health check %s/%s échoué: %s", attempt, self.health_retries, exc)
            if attempt < self.health_retries:
                await asyncio.sleep(self.health_backoff)
        logger.warning("[CLIENT] Serveur %s hors ligne", self.base_url)
        return False

    async def login(self, username: str, password: str) -> str:
        response = await self._request("POST", "/auth/login", json={"username": username, "password": password})
        self.token = models.Token.model_validate(response.json()).access_token
        return self.token

    # Lots -----------------------------------------------------------------

    async def list_lots(
        self, status: str = "all", *, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[models.LotSummary]:
        params = {"status": status}
        if date_from is not None:
            params["date_from"] = date_from.isoformat()
        if date_to is not None:
            params["date_to"] = date_to.isoformat()
        response = await self._request("GET", "/lots", params=params)
        return models.LotListResponse.model_validate(response.json()).items

    async def get_lot(self, lot_id: int) -> models.Lot:
        """Lot détaillé; les compteurs sont recalculés à partir des éléments reçus."""

        response = await self._request("GET", f"/lots/{lot_id}")
        lot = models.LotDetailResponse.model_validate(response.json()).item
        return reconcile(lot, lot.items)

    async def create_lot(self, payload: models.LotCreate) -> models.LotCreated:
        response = await self._request("POST", "/lots", json=payload.model_dump(mode="json"))
        return models.LotCreated.model_validate(response.json())

    async def update_item(self, item_id: int, changes: models.LotItemUpdate) -> models.ItemUpdateResult:
        response = await self._request(
            "PUT",
            f"/lots/items/{item_id}",
            json=changes.model_dump(mode="json", include=changes.model_fields_set),
        )
        return models.ItemUpdateResult.model_validate(response.json())

    async def update_lot(self, lot_id: int, **fields: Any) -> models.Lot:
        payload = {key: value.isoformat() if isinstance(value, datetime) else value for key, value in fields.items()}
        response = await self._request("PUT", f"/lots/{lot_id}", json=payload)
        return models.LotDetailResponse.model_validate(response.json()).item

    async def finish_lot(self, lot_id: int, finished_at: Optional[datetime] = None) -> models.Lot:
        fields: dict[str, Any] = {"status": "finished"}
        if finished_at is not None:
            fields["finished_at"] = finished_at
        return await self.update_lot(lot_id, **fields)

    async def recover_lot(self, lot_id: int, recovered_at: Optional[datetime] = None) -> models.Lot:
        fields: dict[str, Any] = {"status": "recovered"}
        if recovered_at is not None:
            fields["recovered_at"] = recovered_at
        return await self.update_lot(lot_id, **fields)

    async def rename_lot(self, lot_id: int, name: Optional[str]) -> models.Lot:
        return await self.update_lot(lot_id, lot_name=name)

    async def upload_pdf(self, lot_id: int, pdf_bytes: bytes) -> str:
        payload = {"pdf_base64": base64.b64encode(pdf_bytes).decode("ascii")}
        response = await self._request("POST", f"/lots/{lot_id}/pdf", json=payload, timeout=self.upload_timeout)
        return models.PdfPathResponse.model_validate(response.json()).pdf_path

    async def regenerate_pdf(self, lot_id: int) -> str:
        response = await self._request("POST", f"/lots/{lot_id}/pdf", timeout=self.upload_timeout)
        return models.PdfPathResponse.model_validate(response.json()).pdf_path

    async def download_pdf(self, lot_id: int) -> bytes:
        response = await self._request("GET", f"/lots/{lot_id}/pdf", timeout=self.upload_timeout)
        return response.content

    async def share_lot(self, lot_id: int, recipient: str, message: Optional[str] = None) -> models.EmailResponse:
        response = await self._request(
            "POST",
            f"/lots/{lot_id}/email",
            json={"recipient": recipient, "message": message},
        )
        return models.EmailResponse.model_validate(response.json())

    # Données de référence -------------------------------------------------

    async def list_marques(self) -> list[models.Marque]:
        response = await self._request("GET", "/marques")
        return [models.Marque.model_validate(entry) for entry in response.json()]

    async def list_marques_with_modeles(self) -> list[models.MarqueWithModeles]:
        response = await self._request("GET", "/marques/all")
        return [models.MarqueWithModeles.model_validate(entry) for entry in response.json()]

    async def list_modeles(self, marque_id: int) -> list[models.Modele]:
        response = await self._request("GET", f"/marques/{marque_id}/modeles")
        return [models.Modele.model_validate(entry) for entry in response.json()]

    async def create_marque(self, name: str) -> models.Marque:
        response = await self._request("POST", "/marques", json={"name": name})
        return models.Marque.model_validate(response.json())

    async def create_modele(self, marque_id: int, name: str) -> models.Modele:
        response = await self._request("POST", f"/marques/{marque_id}/modeles", json={"name": name})
        return models.Modele.model_validate(response.json())


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"Erreur HTTP {response.status_code}"
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, list):
        return "; ".join(str(entry.get("msg", entry)) if isinstance(entry, dict) else str(entry) for entry in detail)
    return str(detail or f"Erreur HTTP {response.status_code}")
