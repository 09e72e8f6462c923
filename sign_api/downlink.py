"""Flujos de envío de downlinks (color y comandos) hacia el Busylight.

Orquesta codec + contador del Coordinator + cliente del gateway. No conoce
HTTP: devuelve un DownlinkOutcome que el endpoint traduce a respuesta.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .coordinator import Coordinator
from .errors import ErrorKind
from .gateway import ChirpStackClient, GatewayResult
from .metrics import DOWNLINKS_QUEUED
from .protocol import clamp_byte, describe, encode_color, encode_command, rgb_to_hex

logger = logging.getLogger(__name__)


@dataclass
class DownlinkOutcome:
    """Resultado de un envío, listo para serializar."""
    ok: bool
    status: int
    body: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorKind] = None


class DownlinkService:
    """Envía colores y comandos al dispositivo.

    Args:
        coordinator: Fuente del contador de downlinks
        gateway: Cliente de la cola del network server
        confirmed_every: Cada N-ésimo downlink va confirmado (0 = nunca)
    """

    def __init__(
        self,
        coordinator: Coordinator,
        gateway: ChirpStackClient,
        confirmed_every: int = 0,
    ):
        self._coordinator = coordinator
        self._gateway = gateway
        self._confirmed_every = max(0, int(confirmed_every))

    async def _next_confirmed(self) -> tuple[int, bool]:
        counter = await self._coordinator.increment_downlink_counter()
        confirmed = self._confirmed_every > 0 and counter % self._confirmed_every == 0
        return counter, confirmed

    @staticmethod
    def _upstream_failure(result: GatewayResult) -> DownlinkOutcome:
        status = result.status if result.status >= 500 else 502
        return DownlinkOutcome(
            ok=False, status=status, body=result.error_dict(), error=ErrorKind.UPSTREAM,
        )

    async def send_color(self, r, g, b) -> DownlinkOutcome:
        """Envía un color. NaN o infinito es error del caller: 400, nada se encola."""
        if not all(math.isfinite(float(v)) for v in (r, g, b)):
            return DownlinkOutcome(
                ok=False,
                status=400,
                body={"error": "Invalid color values"},
                error=ErrorKind.VALIDATION,
            )

        red, green, blue = clamp_byte(r), clamp_byte(g), clamp_byte(b)
        payload = encode_color(red, green, blue)
        counter, confirmed = await self._next_confirmed()

        result = await self._gateway.enqueue(payload, confirmed=confirmed)
        if not result.ok:
            DOWNLINKS_QUEUED.labels(kind="color", status="upstream_error").inc()
            return self._upstream_failure(result)

        DOWNLINKS_QUEUED.labels(kind="color", status="success").inc()
        snapshot = await self._gateway.list_queue()
        hex_color = rgb_to_hex(red, green, blue)

        logger.info(
            "[DOWNLINK] Color queued hex=%s counter=%d confirmed=%s queue_depth=%d",
            hex_color, counter, confirmed, snapshot.queue_depth,
        )
        return DownlinkOutcome(
            ok=True,
            status=200,
            body={
                "success": True,
                "color": {"r": red, "g": green, "b": blue},
                "hex": hex_color,
                "payload": result.payload_b64,
                "queueDepth": snapshot.queue_depth,
                "downlinkId": result.downlink_id,
            },
        )

    async def send_command(self, command: int, param: int = 0) -> DownlinkOutcome:
        """Envía un comando de 2 bytes.

        Un valor fuera de rango es error del caller: 400, nada se encola.
        """
        try:
            payload = encode_command(command, param)
        except ValueError as e:
            return DownlinkOutcome(
                ok=False, status=400, body={"error": str(e)}, error=ErrorKind.VALIDATION,
            )

        label = describe(command, param)
        counter, confirmed = await self._next_confirmed()

        result = await self._gateway.enqueue(payload, confirmed=confirmed)
        if not result.ok:
            DOWNLINKS_QUEUED.labels(kind="command", status="upstream_error").inc()
            return self._upstream_failure(result)

        DOWNLINKS_QUEUED.labels(kind="command", status="success").inc()
        logger.info("[DOWNLINK] Command queued %s counter=%d", label, counter)
        return DownlinkOutcome(
            ok=True,
            status=200,
            body={
                "success": True,
                "command": label,
                "payload": result.payload_b64,
                "downlinkId": result.downlink_id,
            },
        )
