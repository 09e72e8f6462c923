"""Rate limiter del endpoint de color.

El conteo vive en el Coordinator (instancia "rate-limit"), no en memoria del
proceso: la ventana fija y el check-and-increment son atómicos ahí. Este
módulo solo resuelve la clave por IP y traduce el rechazo a HTTP 429.

Configuración via Settings:
- RATE_LIMIT_WINDOW_MS (default: 60000)
- RATE_LIMIT_MAX (default: 10)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from common.config import Settings

from .coordinator import DEFAULT_MAX_REQUESTS, DEFAULT_WINDOW_MS, Coordinator
from .metrics import RATE_LIMIT_REJECTIONS

logger = logging.getLogger(__name__)

LED_KEY_PREFIX = "led:"


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuración de rate limiting."""
    window_ms: int = DEFAULT_WINDOW_MS
    max_requests: int = DEFAULT_MAX_REQUESTS

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitConfig":
        return cls(
            window_ms=settings.rate_limit_window_ms,
            max_requests=settings.rate_limit_max,
        )


class LedRateLimiter:
    """Límite de envíos de color por IP de cliente."""

    def __init__(self, coordinator: Coordinator, config: Optional[RateLimitConfig] = None):
        self._coordinator = coordinator
        self.config = config or RateLimitConfig()
        logger.info(
            "RATE_LIMITER_INIT window_ms=%d max=%d",
            self.config.window_ms, self.config.max_requests,
        )

    async def check(self, request: Request) -> None:
        """Cuenta la request y la rechaza si excede el límite.

        Raises:
            HTTPException(429) con Retry-After si se excede el límite
        """
        key = f"{LED_KEY_PREFIX}{get_client_ip(request)}"
        decision = await self._coordinator.check_and_increment_rate(
            key,
            window_ms=self.config.window_ms,
            max_requests=self.config.max_requests,
        )
        if decision.allowed:
            return

        RATE_LIMIT_REJECTIONS.labels(scope="led").inc()
        retry_after = decision.retry_after_seconds or 0
        logger.info(
            "RATE_LIMIT_EXCEEDED key=%s limit=%d retry_after=%ds",
            key, self.config.max_requests, retry_after,
        )
        raise HTTPException(
            status_code=429,
            detail={"error": "Rate limit exceeded", "retryAfter": retry_after},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(self.config.max_requests),
            },
        )


def get_client_ip(request: Request) -> str:
    """Obtiene la IP del cliente, considerando proxies."""
    # Cloudflare pone la IP real del visitante aquí
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()

    # X-Forwarded-For puede tener múltiples IPs: "client, proxy1, proxy2"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
