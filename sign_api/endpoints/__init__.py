"""Módulo de endpoints HTTP.

Contiene los routers del servicio organizados por función.
"""

from .health import router as health_router
from .led import router as led_router
from .track import router as track_router
from .uplink import router as uplink_router

__all__ = [
    "health_router",
    "led_router",
    "track_router",
    "uplink_router",
]
