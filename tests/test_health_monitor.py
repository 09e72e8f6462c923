"""Tests del health monitor (función pura, reglas en orden).

Ejecutar:
    pytest tests/test_health_monitor.py -v
"""

import pytest

from sign_api.health_monitor import evaluate_health
from sign_api.models import PullStats, TrackRecord

NOW = 1_700_000_000_000


def _track(age_ms: int = 0, session_id: str = "sess-1") -> TrackRecord:
    return TrackRecord(session_id=session_id, track_name="webcam-video", timestamp=NOW - age_ms)


# =============================================================================
# MATRIZ DE REGLAS
# =============================================================================

class TestHealthMatrix:

    def test_no_track(self):
        verdict = evaluate_health(None, None, NOW)
        assert verdict.healthy is False
        assert verdict.reason == "no-track"

    def test_stale_heartbeat(self):
        verdict = evaluate_health(_track(age_ms=61_000), None, NOW)
        assert verdict.healthy is False
        assert verdict.reason == "stale-heartbeat"

    def test_exactly_sixty_seconds_is_not_stale(self):
        verdict = evaluate_health(_track(age_ms=60_000), None, NOW)
        assert verdict.healthy is True

    def test_mismatched_session_is_new_session(self):
        stats = PullStats(last_success=None, recent_failures=10, session_id="old-sess")
        verdict = evaluate_health(_track(), stats, NOW)

        assert verdict.healthy is True
        assert verdict.reason == "new-session"
        assert verdict.session_id == "sess-1"

    def test_pull_failures(self):
        stats = PullStats(last_success=NOW - 400_000, recent_failures=3, session_id="sess-1")
        verdict = evaluate_health(_track(), stats, NOW)

        assert verdict.healthy is False
        assert verdict.reason == "pull-failures"

    def test_pull_failures_without_any_success(self):
        stats = PullStats(last_success=None, recent_failures=3, session_id="sess-1")
        assert evaluate_health(_track(), stats, NOW).reason == "pull-failures"

    def test_failures_with_recent_success_are_tolerated(self):
        stats = PullStats(last_success=NOW - 60_000, recent_failures=5, session_id="sess-1")
        assert evaluate_health(_track(), stats, NOW).healthy is True

    def test_no_recent_viewers(self):
        stats = PullStats(last_success=NOW - 3_700_000, recent_failures=0, session_id="sess-1")
        verdict = evaluate_health(_track(), stats, NOW)

        assert verdict.healthy is False
        assert verdict.reason == "no-recent-viewers"

    def test_healthy_carries_observability_fields(self):
        stats = PullStats(last_success=NOW - 1_000, recent_failures=1, session_id="sess-1")
        verdict = evaluate_health(_track(), stats, NOW)

        assert verdict.healthy is True
        assert verdict.reason is None
        assert verdict.to_dict() == {
            "healthy": True,
            "sessionId": "sess-1",
            "lastSuccess": NOW - 1_000,
            "recentFailures": 1,
        }

    def test_fresh_track_without_stats_is_healthy(self):
        verdict = evaluate_health(_track(), None, NOW)
        assert verdict.healthy is True
        assert verdict.recent_failures == 0


# =============================================================================
# PRECEDENCIA
# =============================================================================

class TestRulePrecedence:

    def test_stale_wins_over_session_mismatch(self):
        stats = PullStats(last_success=NOW - 1_000, recent_failures=0, session_id="old-sess")
        verdict = evaluate_health(_track(age_ms=61_000), stats, NOW)

        assert verdict.healthy is False
        assert verdict.reason == "stale-heartbeat"

    def test_session_mismatch_wins_over_pull_failures(self):
        stats = PullStats(last_success=NOW - 400_000, recent_failures=3, session_id="old-sess")
        assert evaluate_health(_track(), stats, NOW).reason == "new-session"

    def test_pull_failures_win_over_idle_viewers(self):
        stats = PullStats(last_success=NOW - 3_700_000, recent_failures=3, session_id="sess-1")
        assert evaluate_health(_track(), stats, NOW).reason == "pull-failures"

    @pytest.mark.parametrize("reason", ["no-track", "stale-heartbeat"])
    def test_unhealthy_dict_has_only_reason(self, reason):
        track = None if reason == "no-track" else _track(age_ms=120_000)
        assert evaluate_health(track, None, NOW).to_dict() == {"healthy": False, "reason": reason}
