"""Cloud provider implementations."""

from __future__ import annotations

from tierforge.models.config import ProviderConfig
from tierforge.providers.base import CloudProvider, RemoteResource
from tierforge.providers.http import HttpProvider
from tierforge.providers.simulated import SimulatedProvider
from tierforge.schema.types import SchemaRegistry

__all__ = [
    "CloudProvider",
    "HttpProvider",
    "RemoteResource",
    "SimulatedProvider",
    "build_provider",
]


def build_provider(config: ProviderConfig, registry: SchemaRegistry) -> CloudProvider:
    """Instantiate the provider selected by *config*."""
    if config.kind == "http":
        return HttpProvider(
            endpoint=config.endpoint,
            token_env=config.token_env,
            timeout=config.timeout_seconds,
            poll_interval=config.poll_interval_seconds,
            poll_timeout=config.poll_timeout_seconds,
        )
    return SimulatedProvider(registry=registry, persist_path=config.simulated_cloud_path or None)
