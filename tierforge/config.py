"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from tierforge.models.config import (
    APIConfig,
    LogConfig,
    ProviderConfig,
    RetryConfig,
    SchedulerConfig,
    StateConfig,
    TierforgeConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"TIERFORGE_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_choice(name: str, value: str, valid: set[str]) -> str:
    if value.lower() not in valid:
        raise ValueError(f"Invalid {name}: {value}. Must be one of {sorted(valid)}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    return _validate_choice("log level", value, {"debug", "info", "warning", "error"})


def load_config() -> TierforgeConfig:
    """Load configuration from TIERFORGE_* environment variables."""
    return TierforgeConfig(
        scheduler=SchedulerConfig(
            max_concurrency=_env_int("MAX_CONCURRENCY", 10, min_val=1, max_val=64),
            wait_in_flight_on_abort=_env_bool("WAIT_IN_FLIGHT_ON_ABORT", True),
        ),
        retry=RetryConfig(
            max_attempts=_env_int("RETRY_MAX_ATTEMPTS", 5, min_val=1, max_val=10),
            base_delay_seconds=_env_float("RETRY_BASE_DELAY", 1.0, min_val=0.0),
            max_delay_seconds=_env_float("RETRY_MAX_DELAY", 30.0, min_val=0.0),
        ),
        state=StateConfig(
            path=_env("STATE_PATH", "tierforge.state.json"),
            lock=_validate_choice("state lock", _env("STATE_LOCK", "file"), {"file", "none"}),
        ),
        provider=ProviderConfig(
            kind=_validate_choice("provider", _env("PROVIDER", "simulated"), {"simulated", "http"}),
            endpoint=_env("PROVIDER_ENDPOINT", ""),
            token_env=_env("PROVIDER_TOKEN_ENV", ""),
            timeout_seconds=_env_float("PROVIDER_TIMEOUT", 30.0, min_val=1.0),
            poll_interval_seconds=_env_float("PROVIDER_POLL_INTERVAL", 2.0, min_val=0.0),
            poll_timeout_seconds=_env_float("PROVIDER_POLL_TIMEOUT", 1800.0, min_val=1.0),
            simulated_cloud_path=_env("SIMULATED_CLOUD_PATH", ""),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_choice("log format", _env("LOG_FORMAT", "json"), {"json", "console"}),
        ),
    )
