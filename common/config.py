from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


DEFAULT_ALLOWED_ORIGINS = (
    "https://joeyhiller.com",
    "https://www.joeyhiller.com",
    "https://interactive-sign.jthiller.workers.dev",
    "https://interactive-sign-pages.pages.dev",
    "http://localhost:5173",  # Vite dev server
    "http://localhost:4173",  # Vite preview
)


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _load_env() -> None:
    # Carga el .env si existe, pero las variables reales del entorno tienen prioridad.
    env_file = os.getenv("SIGN_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Configuración inmutable del servicio HTTP.

    Se construye una sola vez al arrancar y se pasa explícitamente a los
    componentes que la necesitan (CORS, auth, gateway, rate limiting).
    """
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS

    # Secretos compartidos (None = no configurado)
    publisher_secret: Optional[str] = None
    webhook_secret: Optional[str] = None

    # ChirpStack (LoRaWAN network server)
    chirpstack_api_url: Optional[str] = None
    chirpstack_device_id: Optional[str] = None
    chirpstack_api_token: Optional[str] = None
    chirpstack_timeout_seconds: float = 10.0
    # Cada N downlinks uno se envía confirmado (0 = nunca)
    confirmed_downlink_every: int = 0

    # Coordinator
    coordinator_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Rate limiting de POST /led
    rate_limit_window_ms: int = 60000
    rate_limit_max: int = 10

    port: int = 8787
    log_level: str = "INFO"


def get_settings() -> Settings:
    _load_env()

    origins_raw = os.getenv("ALLOWED_ORIGINS", "")
    allowed_origins = _split_csv(origins_raw) if origins_raw.strip() else DEFAULT_ALLOWED_ORIGINS

    return Settings(
        allowed_origins=allowed_origins,
        publisher_secret=_optional("PI_PUBLISHER_SECRET"),
        webhook_secret=_optional("CHIRPSTACK_WEBHOOK_SECRET"),
        chirpstack_api_url=_optional("CHIRPSTACK_API_URL"),
        chirpstack_device_id=_optional("CHIRPSTACK_BUSYLIGHT_DEVICE_ID"),
        chirpstack_api_token=_optional("CHIRPSTACK_API"),
        chirpstack_timeout_seconds=float(os.getenv("CHIRPSTACK_TIMEOUT_SECONDS", "10")),
        confirmed_downlink_every=int(os.getenv("CONFIRMED_DOWNLINK_EVERY", "0")),
        coordinator_backend=os.getenv("COORDINATOR_BACKEND", "memory").strip().lower(),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        rate_limit_window_ms=int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000")),
        rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", "10")),
        port=int(os.getenv("PORT", "8787")),
        log_level=os.getenv("SIGN_LOG_LEVEL", "INFO").upper(),
    )


@dataclass(frozen=True)
class PublisherSettings:
    """Configuración del proceso publisher (cámara en la Pi)."""
    worker_url: str = "http://localhost:8787"
    publisher_secret: Optional[str] = None
    track_name: str = "webcam-video"

    heartbeat_interval: float = 30.0
    request_timeout: float = 10.0
    connect_timeout: float = 30.0
    failure_threshold: int = 3
    restart_delay: float = 5.0
    retry_backoff: float = 30.0

    # "modulo:callable" que construye la StreamSession
    session_factory: Optional[str] = None

    log_level: str = "INFO"


def get_publisher_settings() -> PublisherSettings:
    _load_env()

    return PublisherSettings(
        worker_url=os.getenv("WORKER_URL", "http://localhost:8787").rstrip("/"),
        publisher_secret=_optional("PI_PUBLISHER_SECRET"),
        track_name=os.getenv("PUBLISHER_TRACK_NAME", "webcam-video"),
        heartbeat_interval=float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "30")),
        request_timeout=float(os.getenv("PUBLISHER_REQUEST_TIMEOUT_SECONDS", "10")),
        connect_timeout=float(os.getenv("PUBLISHER_CONNECT_TIMEOUT_SECONDS", "30")),
        failure_threshold=int(os.getenv("HEARTBEAT_FAILURE_THRESHOLD", "3")),
        restart_delay=float(os.getenv("PUBLISHER_RESTART_DELAY_SECONDS", "5")),
        retry_backoff=float(os.getenv("PUBLISHER_RETRY_BACKOFF_SECONDS", "30")),
        session_factory=_optional("PUBLISHER_SESSION_FACTORY"),
        log_level=os.getenv("PUBLISHER_LOG_LEVEL", "INFO").upper(),
    )
