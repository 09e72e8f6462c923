"""Tests del cliente del registry y de la carga de sesiones del publisher.

Ejecutar:
    pytest tests/test_publisher.py -v
"""

import json

import httpx
import pytest

from common.config import PublisherSettings
from publisher.main import build_session
from publisher.registry_client import RegistryClient
from publisher.session import LoopbackSession, StreamSession, load_session_factory


# =============================================================================
# REGISTRY CLIENT
# =============================================================================

class TestRegistryClient:

    @pytest.mark.asyncio
    async def test_register_sends_secret_and_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["secret"] = request.headers.get("X-Publisher-Secret")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        client = RegistryClient(
            "http://sign.local/", publisher_secret="s3cret",
            transport=httpx.MockTransport(handler),
        )
        await client.register_track("sess-1", "webcam-video")
        await client.aclose()

        assert seen == {
            "path": "/track/register",
            "secret": "s3cret",
            "body": {"sessionId": "sess-1", "trackName": "webcam-video"},
        }

    @pytest.mark.asyncio
    async def test_no_secret_header_when_unset(self):
        seen = {}

        def handler(request):
            seen["has_secret"] = "X-Publisher-Secret" in request.headers
            return httpx.Response(200, json={"success": True})

        client = RegistryClient("http://sign.local", transport=httpx.MockTransport(handler))
        await client.unregister_track()
        await client.aclose()

        assert seen["has_secret"] is False

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = RegistryClient(
            "http://sign.local",
            transport=httpx.MockTransport(lambda r: httpx.Response(401, json={"error": "Unauthorized"})),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await client.register_track("sess-1", "webcam-video")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_health_returns_verdict(self):
        client = RegistryClient(
            "http://sign.local",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"healthy": False, "reason": "no-track"})
            ),
        )
        assert await client.get_health() == {"healthy": False, "reason": "no-track"}
        await client.aclose()


# =============================================================================
# SESIONES
# =============================================================================

class TestSessions:

    @pytest.mark.asyncio
    async def test_loopback_session_lifecycle(self):
        session = LoopbackSession()
        states = []
        session.add_state_listener(states.append)

        session_id = await session.start()
        assert session_id == session.session_id
        assert session.connection_state == "connected"

        await session.stop()
        await session.stop()
        assert session.session_id is None
        assert states == ["connected", "closed"]

    def test_loopback_satisfies_protocol(self):
        assert isinstance(LoopbackSession(), StreamSession)

    def test_load_factory_from_path(self):
        factory = load_session_factory("publisher.session:LoopbackSession")
        assert factory is LoopbackSession

    @pytest.mark.parametrize("path", ["publisher.session", ":LoopbackSession", "publisher.session:"])
    def test_invalid_path(self, path):
        with pytest.raises(ValueError):
            load_session_factory(path)

    def test_non_callable_attribute(self):
        with pytest.raises(ValueError):
            load_session_factory("publisher.session:logger")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            load_session_factory("publisher.does_not_exist:Factory")

    def test_build_session_defaults_to_loopback(self):
        assert isinstance(build_session(PublisherSettings()), LoopbackSession)

    def test_build_session_uses_factory(self):
        settings = PublisherSettings(session_factory="publisher.session:LoopbackSession")
        assert isinstance(build_session(settings), LoopbackSession)
