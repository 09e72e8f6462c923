"""Proceso publisher: mantiene el stream de la cámara registrado.

Uso: `sign-publisher` o `python -m publisher.main`. Corre hasta SIGINT/SIGTERM
y al salir desregistra el track.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from common.config import PublisherSettings, get_publisher_settings
from common.logging_setup import configure_logging

from .heartbeat import HeartbeatMonitor
from .registry_client import RegistryClient
from .session import LoopbackSession, StreamSession, load_session_factory

logger = logging.getLogger(__name__)


def build_session(settings: PublisherSettings) -> StreamSession:
    if not settings.session_factory:
        logger.warning(
            "[PUBLISHER] PUBLISHER_SESSION_FACTORY not set - using LoopbackSession (no video)"
        )
        return LoopbackSession()
    return load_session_factory(settings.session_factory)()


async def run_publisher(
    settings: PublisherSettings,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    session = build_session(settings)
    client = RegistryClient(
        settings.worker_url,
        publisher_secret=settings.publisher_secret,
        timeout=settings.request_timeout,
    )
    monitor = HeartbeatMonitor(session, client, settings)
    session.add_state_listener(monitor.on_connection_state_change)

    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

    logger.info(
        "[PUBLISHER] Starting worker_url=%s track=%s heartbeat=%.0fs",
        settings.worker_url, settings.track_name, settings.heartbeat_interval,
    )
    try:
        await monitor.start()
        await stop_event.wait()
        logger.info("[PUBLISHER] Shutting down...")
    finally:
        await monitor.stop()
        await client.aclose()


def main() -> None:
    settings = get_publisher_settings()
    configure_logging(settings.log_level)
    asyncio.run(run_publisher(settings))


if __name__ == "__main__":
    main()
