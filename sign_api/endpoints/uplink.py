"""Webhook de ChirpStack para eventos de uplink/ACK.

Un frame inválido se loguea y responde deviceState=null con el motivo en
decodeError: el network server nunca recibe un 5xx por telemetría mal formada.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import require_webhook_secret
from ..coordinator import Coordinator
from ..dependencies import get_coordinator
from ..metrics import UPLINKS_DECODED
from ..protocol import decode_uplink_base64
from ..schemas import UplinkEventIn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["uplink"])


@router.post("/uplink", dependencies=[Depends(require_webhook_secret)])
async def receive_uplink(
    payload: UplinkEventIn,
    event: Optional[str] = Query(default=None),
    coordinator: Coordinator = Depends(get_coordinator),
):
    event_type = payload.type or event or "unknown"
    logger.info("[UPLINK] Event type=%s dev_eui=%s", event_type, payload.device_eui())

    device_state = None
    decode_error = None
    if payload.data:
        decoded = decode_uplink_base64(payload.data, now_ms=coordinator.now())
        if decoded.ok:
            await coordinator.record_telemetry(decoded.state)
            device_state = decoded.to_dict()
            UPLINKS_DECODED.labels(status="decoded").inc()
        else:
            decode_error = decoded.to_dict()
            logger.warning(
                "[UPLINK] %s error=%s length=%s",
                decoded.error_kind.value.upper(), decoded.error, decoded.length,
            )
            UPLINKS_DECODED.labels(status="invalid").inc()
    else:
        UPLINKS_DECODED.labels(status="empty").inc()

    body = {
        "received": True,
        "eventType": event_type,
        "deviceState": device_state,
    }
    if decode_error is not None:
        body["decodeError"] = decode_error
    return body
