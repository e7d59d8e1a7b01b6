"""Exception hierarchy for tierforge.

Configuration errors are raised before any remote call is issued and carry
enough location information (field path, cycle path) to be fixed without a
debugger.  Provider errors are classified so the retry layer can tell a
transient failure from a fatal one.
"""

from __future__ import annotations

from typing import Any


class TierforgeError(Exception):
    """Base exception for all tierforge errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ---------------------------------------------------------------------------
# Configuration errors (zero side effects)
# ---------------------------------------------------------------------------


class ConfigurationError(TierforgeError):
    """The declaration set is invalid; nothing was provisioned."""


class DeclarationError(ConfigurationError):
    """Malformed declaration document or invalid variable value."""


class EvaluationError(ConfigurationError):
    """An expression could not be evaluated (missing attribute, bad index, undefined variable)."""


class ExpressionSyntaxError(ConfigurationError):
    """An expression could not be parsed."""

    def __init__(self, source: str, position: int, reason: str) -> None:
        self.source = source
        self.position = position
        self.reason = reason
        super().__init__(f"{reason} at position {position} in expression {source!r}")


class SchemaValidationError(ConfigurationError):
    """A resource block does not match its kind's schema."""

    def __init__(self, address: str, field_path: str, reason: str) -> None:
        self.address = address
        self.field_path = field_path
        super().__init__(f"{address}: {field_path}: {reason}")


class DanglingReferenceError(ConfigurationError):
    """A reference names a resource that is not declared."""

    def __init__(self, address: str, field_path: str, target: str) -> None:
        self.address = address
        self.field_path = field_path
        self.target = target
        super().__init__(f"{address}: {field_path}: reference to undeclared resource {target!r}")


class CycleError(ConfigurationError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"dependency cycle: {' -> '.join(cycle)}")


class DisabledDependencyError(ConfigurationError):
    """A realized resource requires a value from a resource disabled by a flag."""

    def __init__(self, address: str, field_path: str, producer: str) -> None:
        self.address = address
        self.field_path = field_path
        self.producer = producer
        super().__init__(
            f"{address}: {field_path}: required dependency {producer!r} is disabled "
            "and the field does not accept an absent value"
        )


class OrphanReferencedError(ConfigurationError):
    """A resource scheduled for removal is still depended on."""

    def __init__(self, orphan: str, dependents: list[str]) -> None:
        self.orphan = orphan
        self.dependents = dependents
        super().__init__(f"{orphan} is no longer declared but is still depended on by {', '.join(dependents)}")


# ---------------------------------------------------------------------------
# Remote API errors
# ---------------------------------------------------------------------------


class ProviderError(TierforgeError):
    """Base class for errors raised by a cloud provider."""


class TransientProviderError(ProviderError):
    """Network failure, timeout or server-side error worth retrying."""


class RateLimitedError(TransientProviderError):
    """The provider throttled the request."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, {"retry_after": retry_after} if retry_after is not None else None)


class AuthorizationError(ProviderError):
    """The caller's credentials were rejected.  Never retried."""


class ResourceNotFoundError(ProviderError):
    """The remote object does not exist."""


# ---------------------------------------------------------------------------
# Run-level errors
# ---------------------------------------------------------------------------


class DriftConflictError(TierforgeError):
    """Remote state changed outside tierforge and the overwrite was not confirmed."""

    def __init__(self, addresses: list[str]) -> None:
        self.addresses = addresses
        super().__init__(f"drift detected on {', '.join(addresses)}; confirmation required to overwrite")


class StateLockError(TierforgeError):
    """The state record is locked by another invocation."""


class RunAborted(TierforgeError):
    """The run was aborted by the operator."""
