"""Tests de configuración desde variables de entorno."""

import pytest

from common.config import DEFAULT_ALLOWED_ORIGINS, get_publisher_settings, get_settings


@pytest.fixture(autouse=True)
def no_env_file(monkeypatch, tmp_path):
    # Evita que un .env local del desarrollador contamine los tests
    monkeypatch.setenv("SIGN_ENV_FILE", str(tmp_path / "missing.env"))


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("ALLOWED_ORIGINS", "PI_PUBLISHER_SECRET", "CONFIRMED_DOWNLINK_EVERY", "RATE_LIMIT_MAX"):
            monkeypatch.delenv(name, raising=False)

        settings = get_settings()

        assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS
        assert settings.publisher_secret is None
        assert settings.confirmed_downlink_every == 0
        assert settings.rate_limit_window_ms == 60000
        assert settings.rate_limit_max == 10

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("PI_PUBLISHER_SECRET", "  s3cret ")
        monkeypatch.setenv("COORDINATOR_BACKEND", "Redis")
        monkeypatch.setenv("RATE_LIMIT_MAX", "3")

        settings = get_settings()

        assert settings.allowed_origins == ("https://a.example", "https://b.example")
        assert settings.publisher_secret == "s3cret"
        assert settings.coordinator_backend == "redis"
        assert settings.rate_limit_max == 3

    def test_blank_secret_is_unset(self, monkeypatch):
        monkeypatch.setenv("CHIRPSTACK_WEBHOOK_SECRET", "   ")
        assert get_settings().webhook_secret is None

    def test_env_file_does_not_override_environment(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("RATE_LIMIT_WINDOW_MS=1000\nRATE_LIMIT_MAX=99\n")
        monkeypatch.setenv("SIGN_ENV_FILE", str(env_file))
        monkeypatch.setenv("RATE_LIMIT_MAX", "7")
        monkeypatch.delenv("RATE_LIMIT_WINDOW_MS", raising=False)

        settings = get_settings()

        assert settings.rate_limit_max == 7
        assert settings.rate_limit_window_ms == 1000


class TestPublisherSettings:

    def test_defaults(self, monkeypatch):
        for name in ("WORKER_URL", "PUBLISHER_TRACK_NAME", "HEARTBEAT_INTERVAL_SECONDS", "PUBLISHER_CONNECT_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = get_publisher_settings()

        assert settings.worker_url == "http://localhost:8787"
        assert settings.track_name == "webcam-video"
        assert settings.heartbeat_interval == 30.0
        assert settings.failure_threshold == 3
        assert settings.restart_delay == 5.0
        assert settings.retry_backoff == 30.0
        assert settings.connect_timeout == 30.0

    def test_worker_url_trailing_slash(self, monkeypatch):
        monkeypatch.setenv("WORKER_URL", "https://sign.example/")
        assert get_publisher_settings().worker_url == "https://sign.example"

    def test_connect_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("PUBLISHER_CONNECT_TIMEOUT_SECONDS", "12.5")
        assert get_publisher_settings().connect_timeout == 12.5
