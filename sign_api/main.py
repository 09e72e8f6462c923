"""App FastAPI del servicio del cartel interactivo.

create_app() arma los componentes compartidos (Coordinator, gateway,
downlinks, rate limiter) y los deja en app.state; los endpoints los
obtienen vía dependencias.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.config import Settings, get_settings
from common.logging_setup import configure_logging

from .coordinator import Coordinator, create_store
from .downlink import DownlinkService
from .endpoints import health_router, led_router, track_router, uplink_router
from .gateway import ChirpStackClient
from .rate_limiter import LedRateLimiter, RateLimitConfig

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-Publisher-Secret"]
CORS_MAX_AGE = 86400


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "[APP] Started backend=%s origins=%d",
        app.state.settings.coordinator_backend,
        len(app.state.settings.allowed_origins),
    )
    yield
    await app.state.gateway.aclose()
    await app.state.coordinator.close()
    logger.info("[APP] Shutdown complete")


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Todas las respuestas de error llevan la forma {"error": ...}
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(content=body, status_code=exc.status_code, headers=exc.headers)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Request error path=%s err=%s", request.url.path, type(exc).__name__,
    )
    return JSONResponse(content={"error": "Internal server error"}, status_code=500)


def create_app(
    settings: Optional[Settings] = None,
    coordinator: Optional[Coordinator] = None,
    gateway: Optional[ChirpStackClient] = None,
) -> FastAPI:
    """Construye la app.

    Args:
        settings: Configuración (get_settings() por defecto)
        coordinator: Coordinator ya construido (tests); si no, según el backend
        gateway: Cliente de ChirpStack ya construido (tests)
    """
    settings = settings or get_settings()

    if coordinator is None:
        coordinator = Coordinator(create_store(settings.coordinator_backend, settings.redis_url))
    if gateway is None:
        gateway = ChirpStackClient(
            api_url=settings.chirpstack_api_url,
            device_id=settings.chirpstack_device_id,
            api_token=settings.chirpstack_api_token,
            timeout=settings.chirpstack_timeout_seconds,
        )

    app = FastAPI(title="Interactive Sign API", version="0.1.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.coordinator = coordinator
    app.state.gateway = gateway
    app.state.downlink = DownlinkService(
        coordinator,
        gateway,
        confirmed_every=settings.confirmed_downlink_every,
    )
    app.state.rate_limiter = LedRateLimiter(coordinator, RateLimitConfig.from_settings(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        max_age=CORS_MAX_AGE,
    )

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(health_router)
    app.include_router(track_router)
    app.include_router(led_router)
    app.include_router(uplink_router)

    return app


def run() -> None:
    """Entry point: `sign-api` o `python -m sign_api.main`."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
