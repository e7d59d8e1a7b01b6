"""Cloud provider contract.

A provider exposes create/read/update/delete per resource kind.  A call that
returns has reached terminal success on the provider's side; that does not
promise that dependents can already observe the object (eventual
consistency), only that the provider considers it provisioned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RemoteResource:
    """Observed remote object."""

    id: str
    kind: str
    inputs: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)


class CloudProvider(ABC):
    """Abstract base class for every provider implementation.

    Implementations raise the classified errors from ``tierforge.errors``:
    TransientProviderError / RateLimitedError for retryable failures,
    AuthorizationError for rejected credentials, ResourceNotFoundError when
    updating or deleting an object that no longer exists.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider identifier used in logs."""

    @abstractmethod
    async def create(self, kind: str, name: str, inputs: dict[str, Any]) -> RemoteResource:
        """Create an object and wait until the provider reports it provisioned."""

    @abstractmethod
    async def read(self, kind: str, resource_id: str) -> RemoteResource | None:
        """Return the current remote state, or None if the object is gone."""

    @abstractmethod
    async def update(
        self,
        kind: str,
        resource_id: str,
        inputs: dict[str, Any],
        changed: list[str],
    ) -> RemoteResource:
        """Apply *inputs* in place; *changed* names the fields that differ."""

    @abstractmethod
    async def delete(self, kind: str, resource_id: str) -> None:
        """Delete an object and wait until the deletion is terminal."""

    async def close(self) -> None:
        """Release connections held by the provider."""
        return None
