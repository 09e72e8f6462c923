"""Coordinator: única autoridad de estado del servicio.

Particionado en tres instancias independientes:
- "track":      track registrado + estadísticas de pull de los viewers
- "rate-limit": ventanas de rate limiting por clave
- "telemetry":  último estado del Busylight, contador de downlinks, flag de config

Ninguna operación lanza excepciones por condiciones esperadas (ausencia,
vencimiento, datos faltantes): todo vuelve como resultado tipado.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Dict, Optional

from ..errors import ErrorKind, OpResult
from ..health_monitor import TRACK_STALE_MS, evaluate_health
from ..models import (
    BusylightState,
    HealthVerdict,
    PullStats,
    RateDecision,
    RateWindow,
    TrackLookup,
    TrackRecord,
)
from .instance import CoordinatorInstance
from .store import IStateStore, MemoryStateStore

logger = logging.getLogger(__name__)

TRACK_INSTANCE = "track"
RATE_LIMIT_INSTANCE = "rate-limit"
TELEMETRY_INSTANCE = "telemetry"

CURRENT_TRACK_KEY = "currentTrack"
PULL_STATS_KEY = "pullStats"
BUSYLIGHT_STATE_KEY = "busylightState"
DOWNLINK_COUNTER_KEY = "downlinkCounter"
NEEDS_CONFIG_KEY = "busylightNeedsConfig"
RATE_LIMIT_KEY_PREFIX = "ratelimit:"

DEFAULT_WINDOW_MS = 60_000
DEFAULT_MAX_REQUESTS = 10


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class Coordinator:
    """Operaciones atómicas sobre el estado compartido.

    Args:
        store: Backend de persistencia (MemoryStateStore por defecto)
        clock: Reloj en milisegundos; inyectable para tests
    """

    def __init__(
        self,
        store: Optional[IStateStore] = None,
        clock: Callable[[], int] = _wall_clock_ms,
    ):
        self._store = store or MemoryStateStore()
        self._clock = clock
        self._track = CoordinatorInstance(TRACK_INSTANCE, self._store)
        self._rate_limit = CoordinatorInstance(RATE_LIMIT_INSTANCE, self._store)
        self._telemetry = CoordinatorInstance(TELEMETRY_INSTANCE, self._store)

    @property
    def store(self) -> IStateStore:
        return self._store

    def now(self) -> int:
        return self._clock()

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    async def check_and_increment_rate(
        self,
        key: str,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
    ) -> RateDecision:
        """Check-and-increment atómico sobre una ventana fija.

        La request que lleva el contador por encima de max_requests es la
        primera rechazada. Las rechazadas no se persisten.
        """
        storage_key = f"{RATE_LIMIT_KEY_PREFIX}{key}"

        async with self._rate_limit.serialized() as inst:
            now = self._clock()
            raw = await inst.get(storage_key)
            window = RateWindow.from_dict(raw) if raw else None

            if window is None or now - window.start > window_ms:
                window = RateWindow(start=now, count=0)

            window.count += 1

            if window.count > max_requests:
                retry_after = math.ceil((window.start + window_ms - now) / 1000)
                return RateDecision(allowed=False, retry_after_seconds=max(0, retry_after))

            await inst.put(storage_key, window.to_dict())
            return RateDecision(allowed=True)

    # ------------------------------------------------------------------
    # Track registry
    # ------------------------------------------------------------------

    async def register_track(self, session_id: Optional[str], track_name: Optional[str]) -> OpResult:
        """Registra (o reemplaza) el track actual con timestamp = ahora."""
        if not session_id or not track_name:
            return OpResult.failure(ErrorKind.VALIDATION, "Missing sessionId or trackName")

        async with self._track.serialized() as inst:
            record = TrackRecord(
                session_id=session_id,
                track_name=track_name,
                timestamp=self._clock(),
            )
            await inst.put(CURRENT_TRACK_KEY, record.to_dict())

        logger.info("[TRACK] Registered session=%s track=%s", session_id, track_name)
        return OpResult.success()

    async def get_current_track(self) -> TrackLookup:
        async with self._track.serialized() as inst:
            raw = await inst.get(CURRENT_TRACK_KEY)

        if raw is None:
            return TrackLookup(not_found_reason="no-track")

        track = TrackRecord.from_dict(raw)
        if self._clock() - track.timestamp > TRACK_STALE_MS:
            return TrackLookup(not_found_reason="stale")
        return TrackLookup(track=track)

    async def heartbeat(self) -> OpResult:
        """Refresca el timestamp del track existente."""
        async with self._track.serialized() as inst:
            raw = await inst.get(CURRENT_TRACK_KEY)
            if raw is None:
                return OpResult.failure(ErrorKind.NOT_FOUND, "No track to heartbeat")

            track = TrackRecord.from_dict(raw)
            track.timestamp = self._clock()
            await inst.put(CURRENT_TRACK_KEY, track.to_dict())
        return OpResult.success()

    async def unregister_track(self) -> OpResult:
        """Borra el track actual. Idempotente."""
        async with self._track.serialized() as inst:
            await inst.delete(CURRENT_TRACK_KEY)
        logger.info("[TRACK] Unregistered")
        return OpResult.success()

    # ------------------------------------------------------------------
    # Pull stats + health
    # ------------------------------------------------------------------

    async def record_pull_success(self) -> PullStats:
        async with self._track.serialized() as inst:
            raw_track = await inst.get(CURRENT_TRACK_KEY)
            session_id = raw_track["sessionId"] if raw_track else None

            stats = PullStats(
                last_success=self._clock(),
                recent_failures=0,
                session_id=session_id,
            )
            await inst.put(PULL_STATS_KEY, stats.to_dict())
        return stats

    async def record_pull_failure(self) -> PullStats:
        """Suma un fallo de pull para la sesión actual.

        Si las stats guardadas son de otra sesión, se reinician para la
        sesión actual con un fallo.
        """
        async with self._track.serialized() as inst:
            raw_track = await inst.get(CURRENT_TRACK_KEY)
            session_id = raw_track["sessionId"] if raw_track else None

            raw_stats = await inst.get(PULL_STATS_KEY)
            stats = PullStats.from_dict(raw_stats) if raw_stats else None

            if stats is None or stats.session_id != session_id:
                stats = PullStats(last_success=None, recent_failures=1, session_id=session_id)
            else:
                stats.recent_failures += 1

            await inst.put(PULL_STATS_KEY, stats.to_dict())

        logger.info(
            "[TRACK] Pull failure reported session=%s recent_failures=%d",
            session_id, stats.recent_failures,
        )
        return stats

    async def get_health(self) -> HealthVerdict:
        async with self._track.serialized() as inst:
            raw_track = await inst.get(CURRENT_TRACK_KEY)
            raw_stats = await inst.get(PULL_STATS_KEY)

        track = TrackRecord.from_dict(raw_track) if raw_track else None
        stats = PullStats.from_dict(raw_stats) if raw_stats else None
        return evaluate_health(track, stats, self._clock())

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def record_telemetry(self, state: BusylightState) -> OpResult:
        """Reemplaza el estado completo del dispositivo (sin merge)."""
        async with self._telemetry.serialized() as inst:
            await inst.put(BUSYLIGHT_STATE_KEY, state.to_dict())
        logger.info("[TELEMETRY] Busylight state stored: %s", state.color.hex)
        return OpResult.success()

    async def get_telemetry(self) -> Optional[BusylightState]:
        async with self._telemetry.serialized() as inst:
            raw = await inst.get(BUSYLIGHT_STATE_KEY)
        return BusylightState.from_dict(raw) if raw else None

    async def increment_downlink_counter(self) -> int:
        async with self._telemetry.serialized() as inst:
            count = int(await inst.get(DOWNLINK_COUNTER_KEY) or 0) + 1
            await inst.put(DOWNLINK_COUNTER_KEY, count)
        return count

    async def set_needs_config(self, data: Dict[str, Any]) -> OpResult:
        async with self._telemetry.serialized() as inst:
            await inst.put(NEEDS_CONFIG_KEY, data)
        logger.info("[TELEMETRY] Busylight config flag set: %s", data)
        return OpResult.success()

    async def get_needs_config(self) -> Dict[str, Any]:
        async with self._telemetry.serialized() as inst:
            data = await inst.get(NEEDS_CONFIG_KEY)
        if not data:
            return {"needsConfig": False}
        return data

    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        return {
            inst.name: inst.stats
            for inst in (self._track, self._rate_limit, self._telemetry)
        }

    async def close(self) -> None:
        await self._store.close()
