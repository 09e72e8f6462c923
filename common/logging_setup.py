from __future__ import annotations

import logging


LOG_FORMAT = "%(asctime)s %(levelname)s: %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configura el logging raíz para el proceso (API o publisher)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx loguea cada request en INFO; demasiado ruido con heartbeats cada 30s
    logging.getLogger("httpx").setLevel(logging.WARNING)
