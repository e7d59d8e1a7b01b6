"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SchedulerConfig:
    """Execution scheduler configuration."""

    max_concurrency: int = 10
    wait_in_flight_on_abort: bool = True


@dataclass
class RetryConfig:
    """Per-node retry policy for transient provider errors."""

    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class StateConfig:
    """State record location and locking."""

    path: str = "tierforge.state.json"
    lock: str = "file"  # "file" or "none"


@dataclass
class ProviderConfig:
    """Cloud provider client configuration."""

    kind: str = "simulated"  # "simulated" or "http"
    endpoint: str = ""
    token_env: str = ""  # name of the env var holding the bearer token
    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 2.0
    poll_timeout_seconds: float = 1800.0  # deadline for one long-running operation
    simulated_cloud_path: str = ""


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class TierforgeConfig:
    """Top-level tierforge configuration."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    state: StateConfig = field(default_factory=StateConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
