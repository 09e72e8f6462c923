"""Dependencias FastAPI: componentes compartidos guardados en app.state."""

from __future__ import annotations

from fastapi import Request

from common.config import Settings

from .coordinator import Coordinator
from .downlink import DownlinkService
from .gateway import ChirpStackClient
from .rate_limiter import LedRateLimiter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def get_gateway(request: Request) -> ChirpStackClient:
    return request.app.state.gateway


def get_downlink_service(request: Request) -> DownlinkService:
    return request.app.state.downlink


async def enforce_led_rate_limit(request: Request) -> None:
    """Aplica el rate limit por IP de POST /led."""
    limiter: LedRateLimiter = request.app.state.rate_limiter
    await limiter.check(request)
