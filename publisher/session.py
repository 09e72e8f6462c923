"""Sesión de streaming del publisher.

La negociación WebRTC y la captura de video viven fuera de este repo: se
enchufan con PUBLISHER_SESSION_FACTORY="modulo:callable", donde el callable
devuelve un objeto que cumple StreamSession.
"""

from __future__ import annotations

import importlib
import logging
import uuid
from typing import Callable, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

StateListener = Callable[[str], None]


@runtime_checkable
class StreamSession(Protocol):
    """Lo mínimo que el HeartbeatMonitor necesita de una sesión."""

    session_id: Optional[str]
    connection_state: str
    ice_connection_state: str

    async def start(self) -> str:
        """Abre la sesión y publica el track. Devuelve el session id."""
        ...

    async def stop(self) -> None:
        """Cierra la sesión. Idempotente."""
        ...

    def add_state_listener(self, listener: StateListener) -> None:
        """Registra un callback para cambios de estado de la conexión."""
        ...


class LoopbackSession:
    """Sesión sin medios: genera un session id y se declara conectada.

    Sirve para probar registro y heartbeats contra el servicio sin cámara.
    """

    def __init__(self) -> None:
        self.session_id: Optional[str] = None
        self.connection_state = "new"
        self.ice_connection_state = "new"
        self._listeners: List[StateListener] = []

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: str) -> None:
        self.connection_state = state
        self.ice_connection_state = state
        for listener in self._listeners:
            listener(state)

    async def start(self) -> str:
        self.session_id = uuid.uuid4().hex
        self._set_state("connected")
        return self.session_id

    async def stop(self) -> None:
        if self.session_id is None:
            return
        self.session_id = None
        self._set_state("closed")


def load_session_factory(path: str) -> Callable[[], StreamSession]:
    """Resuelve "paquete.modulo:callable".

    Raises:
        ValueError: si el formato es inválido o el atributo no es callable
        ImportError: si el módulo no existe
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid session factory (expected 'module:callable'): {path}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"Session factory is not callable: {path}")

    logger.info("[PUBLISHER] Using session factory %s", path)
    return factory
