"""Cliente de la API REST de ChirpStack (cola de downlinks del dispositivo).

Solo dos operaciones: encolar un downlink y listar la cola. Los errores del
upstream NO se lanzan: vuelven como GatewayResult con status y detalle para
que el caller decida la respuesta.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..models import QueueItem, QueueSnapshot
from ..protocol import DOWNLINK_FPORT, to_base64

logger = logging.getLogger(__name__)


@dataclass
class GatewayResult:
    """Resultado de encolar un downlink."""
    ok: bool
    status: int = 200
    downlink_id: Optional[str] = None
    payload_b64: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None

    def error_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.error, "status": self.status}
        if self.details:
            data["details"] = self.details
        return data


class ChirpStackClient:
    """Cliente asíncrono de la cola de downlinks de un dispositivo."""

    def __init__(
        self,
        api_url: Optional[str],
        device_id: Optional[str],
        api_token: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = (api_url or "").rstrip("/")
        self._device_id = device_id
        self._api_token = api_token
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _missing_config(self) -> Optional[str]:
        if not self._api_url:
            return "CHIRPSTACK_API_URL not configured"
        if not self._device_id:
            return "CHIRPSTACK_BUSYLIGHT_DEVICE_ID not configured"
        if not self._api_token:
            return "CHIRPSTACK_API secret not configured"
        return None

    @property
    def _queue_url(self) -> str:
        return f"{self._api_url}/devices/{self._device_id}/queue"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Grpc-Metadata-Authorization": f"Bearer {self._api_token}",
        }

    async def enqueue(
        self,
        payload: bytes,
        confirmed: bool = False,
        f_port: int = DOWNLINK_FPORT,
    ) -> GatewayResult:
        """Encola un downlink para el dispositivo.

        Returns:
            GatewayResult con el id del downlink, o con el error del upstream
        """
        missing = self._missing_config()
        if missing:
            logger.error("[GATEWAY] %s", missing)
            return GatewayResult(ok=False, status=500, error=missing)

        data = to_base64(payload)
        body = {
            "queueItem": {
                "confirmed": confirmed,
                "data": data,
                "fPort": f_port,
            },
        }

        try:
            response = await self._client.post(self._queue_url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("[GATEWAY] Enqueue transport error: %s", e)
            return GatewayResult(
                ok=False,
                status=502,
                payload_b64=data,
                error="Failed to reach network server",
                details=str(e),
            )

        if response.is_error:
            logger.error(
                "[GATEWAY] Enqueue rejected status=%d body=%s",
                response.status_code, response.text[:200],
            )
            return GatewayResult(
                ok=False,
                status=response.status_code,
                payload_b64=data,
                error="Failed to queue downlink",
                details=response.text,
            )

        downlink_id = None
        try:
            downlink_id = response.json().get("id")
        except ValueError:
            logger.warning("[GATEWAY] Enqueue response is not JSON")

        logger.info(
            "[GATEWAY] Downlink queued id=%s confirmed=%s payload=%s",
            downlink_id, confirmed, data,
        )
        return GatewayResult(ok=True, downlink_id=downlink_id, payload_b64=data)

    async def list_queue(self) -> QueueSnapshot:
        """Lista la cola pendiente del dispositivo.

        Cualquier fallo devuelve profundidad 0 con el error adjunto.
        """
        missing = self._missing_config()
        if missing:
            return QueueSnapshot(error=missing)

        try:
            response = await self._client.get(self._queue_url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("[GATEWAY] Queue fetch error: %s", e)
            return QueueSnapshot(error=str(e) or type(e).__name__)

        if response.is_error:
            logger.error("[GATEWAY] Failed to get queue: %d", response.status_code)
            return QueueSnapshot(error="Failed to fetch queue")

        try:
            items = response.json().get("result") or []
        except ValueError:
            return QueueSnapshot(error="Invalid queue response")

        return QueueSnapshot(
            queue_depth=len(items),
            items=[
                QueueItem(
                    id=item.get("id"),
                    confirmed=bool(item.get("confirmed", False)),
                    f_port=item.get("fPort"),
                    pending=bool(item.get("isPending", False)),
                )
                for item in items
            ],
        )

    async def aclose(self) -> None:
        await self._client.aclose()
