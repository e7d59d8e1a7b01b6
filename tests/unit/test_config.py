"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import os

import pytest

from tierforge.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("TIERFORGE_"):
            monkeypatch.delenv(key)


class TestLoadConfig:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.scheduler.max_concurrency == 10
        assert config.scheduler.wait_in_flight_on_abort is True
        assert config.retry.max_attempts == 5
        assert config.state.path == "tierforge.state.json"
        assert config.state.lock == "file"
        assert config.provider.kind == "simulated"
        assert config.provider.poll_timeout_seconds == 1800.0
        assert config.api.port == 8080
        assert config.log.level == "info"
        assert config.log.format == "json"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TIERFORGE_MAX_CONCURRENCY", "4")
        monkeypatch.setenv("TIERFORGE_WAIT_IN_FLIGHT_ON_ABORT", "no")
        monkeypatch.setenv("TIERFORGE_STATE_PATH", "/tmp/x.json")
        monkeypatch.setenv("TIERFORGE_STATE_LOCK", "NONE")
        monkeypatch.setenv("TIERFORGE_PROVIDER", "http")
        monkeypatch.setenv("TIERFORGE_PROVIDER_ENDPOINT", "https://cloud.example")
        monkeypatch.setenv("TIERFORGE_PROVIDER_POLL_TIMEOUT", "45")
        monkeypatch.setenv("TIERFORGE_RETRY_BASE_DELAY", "0.5")
        monkeypatch.setenv("TIERFORGE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("TIERFORGE_LOG_FORMAT", "Console")
        config = load_config()
        assert config.scheduler.max_concurrency == 4
        assert config.scheduler.wait_in_flight_on_abort is False
        assert config.state.path == "/tmp/x.json"
        assert config.state.lock == "none"
        assert config.provider.kind == "http"
        assert config.provider.endpoint == "https://cloud.example"
        assert config.provider.poll_timeout_seconds == 45.0
        assert config.retry.base_delay_seconds == 0.5
        assert config.log.level == "debug"
        assert config.log.format == "console"

    @pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("-3", 1), ("500", 64), ("12", 12)])
    def test_concurrency_is_clamped(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int) -> None:
        monkeypatch.setenv("TIERFORGE_MAX_CONCURRENCY", raw)
        assert load_config().scheduler.max_concurrency == expected

    def test_port_is_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TIERFORGE_API_PORT", "80")
        assert load_config().api.port == 1024

    def test_negative_delay_is_floored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TIERFORGE_RETRY_MAX_DELAY", "-1")
        assert load_config().retry.max_delay_seconds == 0.0

    @pytest.mark.parametrize(
        ("key", "value", "message"),
        [
            ("LOG_LEVEL", "verbose", "Invalid log level"),
            ("LOG_FORMAT", "xml", "Invalid log format"),
            ("STATE_LOCK", "redis", "Invalid state lock"),
            ("PROVIDER", "aws", "Invalid provider"),
        ],
    )
    def test_invalid_choices(self, monkeypatch: pytest.MonkeyPatch, key: str, value: str, message: str) -> None:
        monkeypatch.setenv(f"TIERFORGE_{key}", value)
        with pytest.raises(ValueError, match=message):
            load_config()

    def test_non_numeric_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TIERFORGE_MAX_CONCURRENCY", "many")
        with pytest.raises(ValueError):
            load_config()
