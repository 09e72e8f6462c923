"""Tests de la máquina de estados de heartbeat/reconexión del publisher.

Ejecutar:
    pytest tests/test_heartbeat.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock, call

import httpx
import pytest

from common.config import PublisherSettings
from publisher.heartbeat import FailureCause, HeartbeatMonitor, PublisherState


class FakeSession:
    """StreamSession en memoria; puede fallar los primeros N start()."""

    def __init__(self, fail_starts: int = 0):
        self.session_id = None
        self.connection_state = "new"
        self.ice_connection_state = "new"
        self.fail_starts = fail_starts
        self.starts = 0
        self.stops = 0
        self.listeners = []

    def add_state_listener(self, listener):
        self.listeners.append(listener)

    async def start(self) -> str:
        self.starts += 1
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise RuntimeError("ice gathering failed")
        self.session_id = f"sess-{self.starts}"
        self.connection_state = "connected"
        self.ice_connection_state = "connected"
        return self.session_id

    async def stop(self) -> None:
        self.stops += 1
        self.session_id = None
        self.connection_state = "closed"
        self.ice_connection_state = "closed"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> PublisherSettings:
    return PublisherSettings(request_timeout=0.05)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client():
    """Mock del RegistryClient."""
    client = AsyncMock()
    client.register_track = AsyncMock()
    client.unregister_track = AsyncMock()
    client.get_health = AsyncMock(return_value={"healthy": True, "sessionId": "sess-1"})
    return client


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def monitor(session, client, settings, sleep) -> HeartbeatMonitor:
    return HeartbeatMonitor(session, client, settings, sleep=sleep)


async def _streaming(monitor: HeartbeatMonitor, session: FakeSession) -> None:
    await session.start()
    monitor.state = PublisherState.STREAMING


# =============================================================================
# HEARTBEAT
# =============================================================================

class TestHeartbeatStep:

    @pytest.mark.asyncio
    async def test_success_reregisters_and_stays_streaming(self, monitor, session, client):
        await _streaming(monitor, session)

        await monitor.heartbeat_step()

        client.register_track.assert_awaited_once_with("sess-1", "webcam-video")
        client.get_health.assert_awaited_once()
        assert monitor.state is PublisherState.STREAMING
        assert monitor.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_three_unhealthy_verdicts_trigger_one_restart(self, monitor, session, client, sleep):
        await _streaming(monitor, session)
        client.get_health.return_value = {"healthy": False, "reason": "pull-failures"}

        await monitor.heartbeat_step()
        await monitor.heartbeat_step()
        assert monitor.state is PublisherState.DEGRADED
        assert monitor.consecutive_failures == 2

        await monitor.heartbeat_step()
        assert monitor.state is PublisherState.RESTARTING
        assert monitor.last_failure is FailureCause.UNHEALTHY

        client.get_health.return_value = {"healthy": True}
        await monitor._restart_task

        assert session.stops == 1
        assert session.starts == 2
        sleep.assert_awaited_once_with(5.0)
        assert monitor.state is PublisherState.STREAMING
        assert monitor.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_success_resets_failure_counter(self, monitor, session, client):
        await _streaming(monitor, session)
        client.get_health.return_value = {"healthy": False, "reason": "no-track"}
        await monitor.heartbeat_step()
        await monitor.heartbeat_step()

        client.get_health.return_value = {"healthy": True}
        await monitor.heartbeat_step()

        assert monitor.consecutive_failures == 0
        assert monitor.state is PublisherState.STREAMING

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, monitor, session, client):
        await _streaming(monitor, session)

        async def stalled(*args):
            await asyncio.sleep(1)

        client.register_track.side_effect = stalled
        await monitor.heartbeat_step()

        assert monitor.consecutive_failures == 1
        assert monitor.last_failure is FailureCause.TIMEOUT
        client.get_health.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_error_counts_as_failure(self, monitor, session, client):
        await _streaming(monitor, session)
        client.get_health.side_effect = httpx.ConnectError("refused")

        await monitor.heartbeat_step()

        assert monitor.consecutive_failures == 1
        assert monitor.last_failure is FailureCause.TRANSPORT

    @pytest.mark.asyncio
    async def test_non_json_health_counts_as_failure(self, monitor, session, client):
        await _streaming(monitor, session)
        client.get_health.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)

        await monitor.heartbeat_step()

        assert monitor.consecutive_failures == 1
        assert monitor.last_failure is FailureCause.INVALID_RESPONSE
        assert monitor.state is PublisherState.DEGRADED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verdict", [["healthy"], "ok", None])
    async def test_non_object_verdict_counts_as_failure(self, monitor, session, client, verdict):
        await _streaming(monitor, session)
        client.get_health.return_value = verdict

        await monitor.heartbeat_step()

        assert monitor.consecutive_failures == 1
        assert monitor.last_failure is FailureCause.INVALID_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verdict", [
        {"healthy": True},
        {"healthy": False, "reason": "pull-failures"},
    ])
    async def test_in_flight_beat_keeps_restart_guard(self, session, client, verdict):
        settings = PublisherSettings(request_timeout=5.0)
        beat_entered = asyncio.Event()
        release_beat = asyncio.Event()
        release_restart = asyncio.Event()
        register_calls = 0

        async def register(*args):
            nonlocal register_calls
            register_calls += 1
            if register_calls == 1:
                beat_entered.set()
                await release_beat.wait()

        async def sleep(seconds):
            await release_restart.wait()

        client.register_track.side_effect = register
        client.get_health.return_value = verdict
        monitor = HeartbeatMonitor(session, client, settings, sleep=sleep)
        await _streaming(monitor, session)

        beat = asyncio.create_task(monitor.heartbeat_step())
        await beat_entered.wait()
        assert monitor.request_restart("connection-failed") is True
        restart_task = monitor._restart_task

        release_beat.set()
        await beat

        assert monitor.state is PublisherState.RESTARTING
        assert monitor.consecutive_failures == 0
        assert monitor.request_restart("second") is False
        assert monitor._restart_task is restart_task

        release_restart.set()
        await restart_task
        assert session.starts == 2
        assert session.stops == 1
        assert monitor.state is PublisherState.STREAMING

    @pytest.mark.asyncio
    async def test_mixed_causes_accumulate(self, monitor, session, client):
        await _streaming(monitor, session)
        client.get_health.side_effect = [
            httpx.ReadError("reset"),
            {"healthy": False, "reason": "stale-heartbeat"},
            httpx.ConnectError("refused"),
        ]

        for _ in range(3):
            await monitor.heartbeat_step()

        assert monitor.state is PublisherState.RESTARTING
        await monitor._restart_task

    @pytest.mark.asyncio
    async def test_skipped_while_restarting(self, monitor, session, client):
        await _streaming(monitor, session)
        monitor.state = PublisherState.RESTARTING

        await monitor.heartbeat_step()

        client.register_track.assert_not_awaited()
        client.get_health.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disconnected_degrades_without_counting(self, monitor, session, client):
        await _streaming(monitor, session)
        session.ice_connection_state = "disconnected"

        await monitor.heartbeat_step()

        assert monitor.state is PublisherState.DEGRADED
        assert monitor.consecutive_failures == 0
        client.register_track.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("conn,ice", [("failed", "connected"), ("connected", "closed")])
    async def test_failed_or_closed_restarts_immediately(self, monitor, session, client, conn, ice):
        await _streaming(monitor, session)
        session.connection_state = conn
        session.ice_connection_state = ice

        await monitor.heartbeat_step()

        assert monitor.state is PublisherState.RESTARTING
        client.register_track.assert_not_awaited()
        await monitor._restart_task
        assert monitor.state is PublisherState.STREAMING


# =============================================================================
# RESTART
# =============================================================================

class TestRestartGuard:

    @pytest.mark.asyncio
    async def test_second_request_is_dropped(self, monitor, session):
        await _streaming(monitor, session)

        assert monitor.request_restart("first") is True
        first_task = monitor._restart_task
        assert monitor.request_restart("second") is False
        assert monitor._restart_task is first_task

        await first_task
        assert session.starts == 2

    @pytest.mark.asyncio
    async def test_state_flips_before_any_await(self, monitor, session):
        await _streaming(monitor, session)

        monitor.request_restart("test")

        assert monitor.state is PublisherState.RESTARTING
        await monitor._restart_task

    @pytest.mark.asyncio
    async def test_connection_failed_callback_restarts(self, monitor, session):
        await _streaming(monitor, session)

        monitor.on_connection_state_change("connected")
        assert monitor.state is PublisherState.STREAMING

        monitor.on_connection_state_change("failed")
        assert monitor.state is PublisherState.RESTARTING
        monitor.on_connection_state_change("failed")

        await monitor._restart_task
        assert session.starts == 2

    @pytest.mark.asyncio
    async def test_failed_restart_retries_after_backoff(self, monitor, session, sleep):
        await _streaming(monitor, session)
        session.fail_starts = 1

        monitor.request_restart("test")
        await monitor._restart_task

        assert sleep.await_args_list == [call(5.0), call(30.0)]
        assert session.starts == 3
        assert monitor.state is PublisherState.STREAMING

    @pytest.mark.asyncio
    async def test_guard_held_during_backoff(self, session, client, settings):
        backoff_started = asyncio.Event()
        release = asyncio.Event()

        async def sleep(seconds):
            if seconds == settings.retry_backoff:
                backoff_started.set()
                await release.wait()

        monitor = HeartbeatMonitor(session, client, settings, sleep=sleep)
        await _streaming(monitor, session)
        session.fail_starts = 1

        monitor.request_restart("test")
        await backoff_started.wait()

        assert monitor.state is PublisherState.RESTARTING
        assert monitor.request_restart("during backoff") is False

        release.set()
        await monitor._restart_task
        assert monitor.state is PublisherState.STREAMING

    @pytest.mark.asyncio
    async def test_registration_failure_during_restart_retries(self, monitor, session, client, sleep):
        await _streaming(monitor, session)
        client.register_track.side_effect = [httpx.ConnectError("refused"), None]

        monitor.request_restart("test")
        await monitor._restart_task

        assert sleep.await_args_list == [call(5.0), call(30.0)]
        assert monitor.state is PublisherState.STREAMING


# =============================================================================
# CICLO DE VIDA
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_registers_and_stop_unregisters(self, monitor, session, client):
        assert await monitor.start() is True
        assert monitor.state is PublisherState.STREAMING
        client.register_track.assert_awaited_once_with("sess-1", "webcam-video")

        await monitor.stop()

        client.unregister_track.assert_awaited_once()
        assert session.stops == 1
        assert monitor.state is PublisherState.IDLE

    @pytest.mark.asyncio
    async def test_failed_start_schedules_retry(self, session, client, settings):
        session.fail_starts = 1
        monitor = HeartbeatMonitor(session, client, settings, sleep=AsyncMock())

        assert await monitor.start() is False
        assert monitor.state is PublisherState.RESTARTING

        await monitor._restart_task
        assert monitor.state is PublisherState.STREAMING

        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_survives_unregister_failure(self, monitor, client):
        await monitor.start()
        client.unregister_track.side_effect = httpx.ConnectError("refused")

        await monitor.stop()

        assert monitor.state is PublisherState.IDLE

    @pytest.mark.asyncio
    async def test_loop_survives_step_error(self, session, client):
        settings = PublisherSettings(heartbeat_interval=0.01)
        monitor = HeartbeatMonitor(session, client, settings, sleep=AsyncMock())
        second_beat = asyncio.Event()
        beats = 0

        async def step():
            nonlocal beats
            beats += 1
            if beats == 1:
                raise RuntimeError("boom")
            second_beat.set()

        monitor.heartbeat_step = step
        loop = asyncio.create_task(monitor._heartbeat_loop())

        await asyncio.wait_for(second_beat.wait(), timeout=1.0)

        assert not loop.done()
        loop.cancel()
        with pytest.raises(asyncio.CancelledError):
            await loop


class StalledSession(FakeSession):
    """Sesión cuyo primer start() no vuelve nunca (signaling colgado)."""

    def __init__(self):
        super().__init__()
        self.stalled = True

    async def start(self) -> str:
        if self.stalled:
            self.stalled = False
            self.starts += 1
            await asyncio.Event().wait()
        return await super().start()


class TestConnectTimeout:

    @pytest.mark.asyncio
    async def test_stalled_start_is_failed_attempt(self, client, sleep):
        session = StalledSession()
        settings = PublisherSettings(request_timeout=0.05, connect_timeout=0.05)
        monitor = HeartbeatMonitor(session, client, settings, sleep=sleep)

        monitor.request_restart("connection-failed")
        await asyncio.wait_for(monitor._restart_task, timeout=1.0)

        assert sleep.await_args_list == [call(5.0), call(30.0)]
        assert session.starts == 2
        assert monitor.state is PublisherState.STREAMING

    @pytest.mark.asyncio
    async def test_stalled_first_start_schedules_retry(self, client):
        session = StalledSession()
        settings = PublisherSettings(request_timeout=0.05, connect_timeout=0.05)
        monitor = HeartbeatMonitor(session, client, settings, sleep=AsyncMock())

        assert await monitor.start() is False
        assert monitor.state is PublisherState.RESTARTING

        await asyncio.wait_for(monitor._restart_task, timeout=1.0)
        assert monitor.state is PublisherState.STREAMING

        await monitor.stop()
