"""Máquina de estados de heartbeat/reconexión del publisher.

Estados: IDLE -> CONNECTING -> STREAMING <-> DEGRADED -> RESTARTING -> STREAMING

Cada heartbeat (cada 30s):
  a) Estado local de la conexión: failed/closed -> restart inmediato;
     disconnected -> DEGRADED, el próximo heartbeat vuelve a mirar.
  b) Re-registra el track y consulta el health del registry. Timeout, error
     de transporte, respuesta malformada o veredicto no sano cuentan como un
     fallo consecutivo;
     al llegar a failure_threshold -> restart. Un ciclo OK resetea a 0.

RESTARTING es la sección crítica: request_restart() devuelve False si ya
hay un restart en curso. El flag se pone antes de cualquier await, así que
dos pedidos seguidos nunca arrancan dos restarts, y un beat que estaba en
vuelo al empezar el restart descarta su resultado. Un restart fallido
reintenta cada retry_backoff, con el guard tomado.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from common.config import PublisherSettings

from .registry_client import RegistryClient
from .session import StreamSession

logger = logging.getLogger(__name__)

RESTART_STATES = frozenset({"failed", "closed"})
DISCONNECTED_STATE = "disconnected"


class PublisherState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DEGRADED = "degraded"
    RESTARTING = "restarting"


class FailureCause(str, Enum):
    """Clase de fallo de un heartbeat. Todas cuentan igual."""
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UNHEALTHY = "unhealthy"
    INVALID_RESPONSE = "invalid_response"


class HeartbeatMonitor:
    """Mantiene la sesión registrada y se auto-repara.

    Args:
        session: Sesión de streaming
        client: Cliente del track registry
        settings: Intervalos, timeouts y umbral de fallos
        sleep: Espera usada en restart/backoff (inyectable para tests)
    """

    def __init__(
        self,
        session: StreamSession,
        client: RegistryClient,
        settings: Optional[PublisherSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or PublisherSettings()
        self._session = session
        self._client = client
        self._track_name = settings.track_name
        self._interval = settings.heartbeat_interval
        self._timeout = settings.request_timeout
        self._connect_timeout = settings.connect_timeout
        self._failure_threshold = settings.failure_threshold
        self._restart_delay = settings.restart_delay
        self._retry_backoff = settings.retry_backoff
        self._sleep = sleep

        self.state = PublisherState.IDLE
        self.consecutive_failures = 0
        self.last_failure: Optional[FailureCause] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Conecta, registra y arranca el timer de heartbeat.

        Si la primera conexión falla se agenda un reintento con backoff.
        """
        connected = await self._connect_cycle()
        if not connected:
            self.state = PublisherState.RESTARTING
            self._restart_task = asyncio.create_task(self._retry_after_backoff())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        return connected

    async def stop(self) -> None:
        """Cancela timers y restarts, cierra la sesión y desregistra el track."""
        for task in (self._heartbeat_task, self._restart_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat_task = None
        self._restart_task = None

        await self._stop_session()
        try:
            await asyncio.wait_for(self._client.unregister_track(), timeout=self._timeout)
            logger.info("[PUBLISHER] Track unregistered")
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            logger.warning("[PUBLISHER] Unregister failed: %s", type(e).__name__)

        self.state = PublisherState.IDLE
        logger.info("[PUBLISHER] Stopped")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.heartbeat_step()
            except Exception:
                # Un beat roto no puede matar el timer
                logger.exception("[HEARTBEAT] Unexpected error in heartbeat step")

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def heartbeat_step(self) -> None:
        if self.state is PublisherState.RESTARTING:
            logger.debug("[HEARTBEAT] Skipped (restart in progress)")
            return

        conn = self._session.connection_state
        ice = self._session.ice_connection_state

        if conn in RESTART_STATES or ice in RESTART_STATES:
            logger.warning("[HEARTBEAT] Connection lost conn=%s ice=%s", conn, ice)
            self.request_restart(f"connection-{conn if conn in RESTART_STATES else ice}")
            return

        if conn == DISCONNECTED_STATE or ice == DISCONNECTED_STATE:
            logger.info("[HEARTBEAT] Connection disconnected, re-checking next beat")
            self.state = PublisherState.DEGRADED
            return

        cause: Optional[FailureCause] = None
        detail = ""
        try:
            await asyncio.wait_for(
                self._client.register_track(self._session.session_id, self._track_name),
                timeout=self._timeout,
            )
            verdict = await asyncio.wait_for(self._client.get_health(), timeout=self._timeout)
        except asyncio.TimeoutError:
            cause, detail = FailureCause.TIMEOUT, f"no response in {self._timeout:.0f}s"
        except httpx.HTTPError as e:
            cause, detail = FailureCause.TRANSPORT, f"{type(e).__name__}: {e}"
        except ValueError as e:
            # Body 2xx que no es JSON
            cause, detail = FailureCause.INVALID_RESPONSE, f"{type(e).__name__}: {e}"
        else:
            if not isinstance(verdict, dict):
                cause, detail = FailureCause.INVALID_RESPONSE, f"verdict is {type(verdict).__name__}"
            elif not verdict.get("healthy", False):
                cause, detail = FailureCause.UNHEALTHY, str(verdict.get("reason"))

        if self.state is PublisherState.RESTARTING:
            # Un restart arrancó mientras este beat esperaba: el resultado ya no aplica
            logger.debug("[HEARTBEAT] Result discarded (restart started mid-beat)")
            return

        if cause is None:
            if self.consecutive_failures:
                logger.info("[HEARTBEAT] Recovered after %d failures", self.consecutive_failures)
            self.consecutive_failures = 0
            self.state = PublisherState.STREAMING
            return

        self._record_failure(cause, detail)

    def _record_failure(self, cause: FailureCause, detail: str) -> None:
        if self.state is PublisherState.RESTARTING:
            return
        self.consecutive_failures += 1
        self.last_failure = cause
        logger.warning(
            "[HEARTBEAT] HEARTBEAT_FAILED cause=%s detail=%s consecutive=%d/%d",
            cause.value, detail, self.consecutive_failures, self._failure_threshold,
        )

        if self.consecutive_failures >= self._failure_threshold:
            self.request_restart(f"{self.consecutive_failures} consecutive heartbeat failures")
        else:
            self.state = PublisherState.DEGRADED

    # ------------------------------------------------------------------
    # Restart
    # ------------------------------------------------------------------

    def request_restart(self, reason: str) -> bool:
        """Pide un restart. Devuelve False (y no hace nada) si ya hay uno en curso."""
        if self.state is PublisherState.RESTARTING:
            logger.info("[PUBLISHER] Restart already in progress, dropping request reason=%s", reason)
            return False

        self.state = PublisherState.RESTARTING
        logger.warning("[PUBLISHER] Restarting reason=%s", reason)
        self._restart_task = asyncio.create_task(self._restart())
        return True

    def on_connection_state_change(self, state: str) -> None:
        """Callback de la sesión ante cambios del estado de conexión."""
        logger.info("[PUBLISHER] Connection state: %s", state)
        if state == "failed":
            self.request_restart("connection-failed")

    async def _restart(self) -> None:
        await self._stop_session()
        await self._sleep(self._restart_delay)
        if await self._connect_cycle(during_restart=True):
            logger.info("[PUBLISHER] Restart complete session=%s", self._session.session_id)
            return
        await self._retry_after_backoff()

    async def _retry_after_backoff(self) -> None:
        # El guard (RESTARTING) sigue tomado durante toda la espera
        while True:
            logger.warning("[PUBLISHER] Restart failed, retrying in %.0fs", self._retry_backoff)
            await self._sleep(self._retry_backoff)
            await self._stop_session()
            if await self._connect_cycle(during_restart=True):
                logger.info("[PUBLISHER] Restart complete session=%s", self._session.session_id)
                return

    # ------------------------------------------------------------------

    async def _connect_cycle(self, during_restart: bool = False) -> bool:
        """Abre la sesión y registra el track. True si quedó transmitiendo."""
        if not during_restart:
            self.state = PublisherState.CONNECTING

        try:
            session_id = await asyncio.wait_for(
                self._session.start(), timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[PUBLISHER] Session start timed out after %.0fs", self._connect_timeout,
            )
            return False
        except Exception:
            # La sesión es un plug-in externo; cualquier error es un intento fallido
            logger.exception("[PUBLISHER] Session start failed")
            return False

        try:
            await asyncio.wait_for(
                self._client.register_track(session_id, self._track_name),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            logger.warning("[PUBLISHER] Track registration failed: %s", type(e).__name__)
            return False

        self.consecutive_failures = 0
        self.state = PublisherState.STREAMING
        logger.info("[PUBLISHER] Streaming session=%s track=%s", session_id, self._track_name)
        return True

    async def _stop_session(self) -> None:
        try:
            await self._session.stop()
        except Exception:
            logger.exception("[PUBLISHER] Session stop failed")
