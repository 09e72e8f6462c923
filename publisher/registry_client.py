"""Cliente HTTP del track registry, usado por el publisher.

Los errores NO se traducen aquí: httpx.HTTPError (incluye status != 2xx vía
raise_for_status) sube al HeartbeatMonitor, que clasifica la causa.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class RegistryClient:
    """Cliente asíncrono de /track/*.

    Args:
        base_url: URL del servicio (WORKER_URL)
        publisher_secret: Se envía como X-Publisher-Secret si está configurado
        timeout: Timeout de transporte de httpx
        transport: Transport alternativo (tests)
    """

    def __init__(
        self,
        base_url: str,
        publisher_secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if publisher_secret:
            headers["X-Publisher-Secret"] = publisher_secret
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def register_track(self, session_id: str, track_name: str) -> None:
        response = await self._client.post(
            "/track/register",
            json={"sessionId": session_id, "trackName": track_name},
        )
        response.raise_for_status()
        logger.debug("[REGISTRY] Track registered session=%s", session_id)

    async def unregister_track(self) -> None:
        response = await self._client.delete("/track/unregister")
        response.raise_for_status()

    async def get_health(self) -> Dict[str, Any]:
        response = await self._client.get("/track/health")
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
