"""Health monitor del feed en vivo.

Función pura sobre el track registrado y las estadísticas de pull de los
viewers. Reglas en orden, gana la primera que aplica:

1. sin track                                  -> unhealthy("no-track")
2. heartbeat vencido (>60s)                   -> unhealthy("stale-heartbeat")
3. stats de otra sesión                       -> healthy("new-session")
4. >=3 fallos y sin éxito en los últimos 5min -> unhealthy("pull-failures")
5. último éxito hace más de 1h                -> unhealthy("no-recent-viewers")
6. si no                                      -> healthy
"""

from __future__ import annotations

from typing import Optional

from .models import HealthVerdict, PullStats, TrackRecord

TRACK_STALE_MS = 60_000
PULL_FAILURE_THRESHOLD = 3
PULL_FAILURE_WINDOW_MS = 5 * 60_000
VIEWER_IDLE_MS = 60 * 60_000


def evaluate_health(
    track: Optional[TrackRecord],
    pull_stats: Optional[PullStats],
    now_ms: int,
) -> HealthVerdict:
    if track is None:
        return HealthVerdict(healthy=False, reason="no-track")

    if now_ms - track.timestamp > TRACK_STALE_MS:
        return HealthVerdict(healthy=False, reason="stale-heartbeat")

    stats = pull_stats or PullStats()

    # Fallos de una sesión anterior no penalizan a la nueva
    if stats.session_id is not None and stats.session_id != track.session_id:
        return HealthVerdict(
            healthy=True,
            reason="new-session",
            session_id=track.session_id,
        )

    last_success = stats.last_success
    if stats.recent_failures >= PULL_FAILURE_THRESHOLD and (
        last_success is None or now_ms - last_success > PULL_FAILURE_WINDOW_MS
    ):
        return HealthVerdict(healthy=False, reason="pull-failures")

    if last_success is not None and now_ms - last_success > VIEWER_IDLE_MS:
        return HealthVerdict(healthy=False, reason="no-recent-viewers")

    return HealthVerdict(
        healthy=True,
        session_id=track.session_id,
        last_success=last_success,
        recent_failures=stats.recent_failures,
    )
