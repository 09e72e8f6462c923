"""Autenticación por secreto compartido.

- X-Publisher-Secret: escrituras del track registry (publisher) y
  operaciones de administración (comandos, flag de config).
- Authorization: Bearer <secreto>: webhook del network server.

SECURITY: las escrituras de track son fail-open si PI_PUBLISHER_SECRET no
está configurado (modo desarrollo, con warning). Las operaciones de
administración son fail-closed: sin secreto configurado no se aceptan.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from common.config import Settings

from ..dependencies import get_app_settings

logger = logging.getLogger(__name__)


def _matches(provided: Optional[str], expected: str) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_publisher_secret(
    x_publisher_secret: str | None = Header(default=None, alias="X-Publisher-Secret"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Valida el secreto del publisher para escrituras de track."""
    expected = settings.publisher_secret
    if not expected:
        logger.warning(
            "[SECURITY WARNING] PI_PUBLISHER_SECRET not set - "
            "allowing unauthenticated track writes (DEV ONLY)"
        )
        return

    if not _matches(x_publisher_secret, expected):
        logger.warning("Unauthorized track registry write attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_admin_secret(
    x_publisher_secret: str | None = Header(default=None, alias="X-Publisher-Secret"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Valida el secreto para operaciones de administración (fail-closed)."""
    expected = settings.publisher_secret
    if not expected:
        logger.error("Admin operation rejected: PI_PUBLISHER_SECRET not configured")
        raise HTTPException(status_code=503, detail="Admin secret not configured")

    if not _matches(x_publisher_secret, expected):
        logger.warning("Unauthorized admin operation attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_webhook_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Valida el Bearer token del webhook de ChirpStack."""
    expected = settings.webhook_secret
    if not expected:
        return

    if not _matches(authorization, f"Bearer {expected}"):
        logger.warning("Unauthorized uplink webhook attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")
