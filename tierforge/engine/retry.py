"""Bounded retry of provider calls.

Only TransientProviderError (including RateLimitedError) is retried.  A
throttled call waits at least the provider's ``Retry-After``; everything
else backs off exponentially with jitter.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from tierforge.errors import RateLimitedError, TransientProviderError
from tierforge.models.config import RetryConfig
from tierforge.observability.metrics import provider_retries_total

_log = structlog.get_logger(component="engine.retry")

T = TypeVar("T")


class _ProviderWait:
    """Exponential jitter, stretched to honour Retry-After."""

    def __init__(self, config: RetryConfig) -> None:
        self._max = config.max_delay_seconds
        self._backoff = wait_exponential_jitter(
            initial=config.base_delay_seconds,
            max=config.max_delay_seconds,
            jitter=config.base_delay_seconds,
        )

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._backoff(retry_state)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            delay = max(delay, min(exc.retry_after, self._max))
        return delay


def _log_retry(kind: str, address: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        provider_retries_total.labels(kind=kind).inc()
        _log.warning(
            "provider_call_retry",
            address=address,
            attempt=retry_state.attempt_number,
            sleep=round(retry_state.upcoming_sleep, 2),
            error=str(outcome.exception()) if outcome is not None else None,
        )

    return before_sleep


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig,
    kind: str,
    address: str = "",
) -> T:
    """Await ``fn(*args)``, retrying transient provider failures.

    The last error is re-raised once ``config.max_attempts`` is exhausted.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=_ProviderWait(config),
        retry=retry_if_exception_type(TransientProviderError),
        before_sleep=_log_retry(kind, address),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await fn(*args)
    raise AssertionError("unreachable")  # pragma: no cover
