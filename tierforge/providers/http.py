"""REST provider backed by httpx.

Talks to a JSON API of the shape::

    POST   /resources/{kind}              {"name": ..., "inputs": {...}}
    GET    /resources/{kind}/{id}
    PATCH  /resources/{kind}/{id}         {"inputs": {...}, "changed": [...]}
    DELETE /resources/{kind}/{id}

Long-running operations answer ``202 Accepted`` with a ``Location`` header;
the operation resource is polled until its ``status`` is ``succeeded`` or
``failed`` or the poll deadline passes.  HTTP failures are classified into
the tierforge provider errors so the retry layer can decide what to retry.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from tierforge.errors import (
    AuthorizationError,
    ProviderError,
    RateLimitedError,
    ResourceNotFoundError,
    TransientProviderError,
)
from tierforge.providers.base import CloudProvider, RemoteResource

_log = structlog.get_logger(component="providers.http")

_TERMINAL_SUCCESS = "succeeded"
_TERMINAL_FAILURE = "failed"


class HttpProvider(CloudProvider):
    """Provider for a REST resource API.

    Args:
        endpoint:      Base URL of the API.
        token_env:     Name of the environment variable holding the bearer
                       token.  Empty means unauthenticated.
        timeout:       Per-request timeout in seconds.
        poll_interval: Delay between polls of a long-running operation.
        poll_timeout:  Deadline in seconds for one long-running operation;
                       transient poll failures are retried until it expires.
        transport:     Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        token_env: str = "",
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        poll_timeout: float = 1800.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("HTTP provider endpoint must not be empty")
        headers = {"Accept": "application/json"}
        if token_env:
            token = os.environ.get(token_env, "")
            if not token:
                raise AuthorizationError(
                    f"credential environment variable {token_env} is not set",
                    {"token_env": token_env},
                )
            headers["Authorization"] = f"Bearer {token}"
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout
        self._client = httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "http"

    async def create(self, kind: str, name: str, inputs: dict[str, Any]) -> RemoteResource:
        response = await self._request("POST", f"/resources/{kind}", json={"name": name, "inputs": inputs})
        body = await self._settle(response)
        return _to_remote(kind, body)

    async def read(self, kind: str, resource_id: str) -> RemoteResource | None:
        try:
            response = await self._request("GET", _object_path(kind, resource_id))
        except ResourceNotFoundError:
            return None
        return _to_remote(kind, response.json())

    async def update(
        self,
        kind: str,
        resource_id: str,
        inputs: dict[str, Any],
        changed: list[str],
    ) -> RemoteResource:
        response = await self._request(
            "PATCH",
            _object_path(kind, resource_id),
            json={"inputs": inputs, "changed": changed},
        )
        body = await self._settle(response)
        return _to_remote(kind, body)

    async def delete(self, kind: str, resource_id: str) -> None:
        response = await self._request("DELETE", _object_path(kind, resource_id))
        await self._settle(response)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            _log.warning("provider_request_timeout", method=method, url=url)
            raise TransientProviderError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            _log.warning("provider_transport_error", method=method, url=url, error=str(exc))
            raise TransientProviderError(f"{method} {url} failed: {exc}") from exc
        _raise_for_status(method, url, response)
        return response

    async def _settle(self, response: httpx.Response) -> dict[str, Any]:
        """Follow a 202 operation to completion and return the final object.

        Transient failures while polling are retried here until the poll
        deadline; they never reach the caller's retry layer, which would
        resend the original request.
        """
        if response.status_code != 202:
            return response.json() if response.content else {}
        location = response.headers.get("Location")
        if not location:
            raise ProviderError("202 Accepted without a Location header")
        deadline = time.monotonic() + self._poll_timeout
        delay = self._poll_interval
        while True:
            if time.monotonic() + delay > deadline:
                _log.warning("provider_operation_timeout", location=location, timeout=self._poll_timeout)
                raise ProviderError(
                    f"operation {location} did not finish within {self._poll_timeout:g}s",
                    {"location": location},
                )
            await asyncio.sleep(delay)
            delay = self._poll_interval
            try:
                poll = await self._request("GET", location)
            except RateLimitedError as exc:
                _log.warning("provider_poll_throttled", location=location, retry_after=exc.retry_after)
                delay = max(delay, exc.retry_after or 0.0)
                continue
            except TransientProviderError as exc:
                _log.warning("provider_poll_failed", location=location, error=str(exc))
                continue
            operation = poll.json()
            status = operation.get("status")
            if status == _TERMINAL_SUCCESS:
                return operation.get("resource") or {}
            if status == _TERMINAL_FAILURE:
                raise ProviderError(
                    f"operation {location} failed: {operation.get('error', 'unknown error')}",
                    {"location": location},
                )
            _log.debug("provider_operation_pending", location=location, status=status)


def _object_path(kind: str, resource_id: str) -> str:
    return f"/resources/{kind}/{quote(resource_id, safe='')}"


def _raise_for_status(method: str, url: str, response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    message = f"{method} {url} returned {status}: {response.text[:200]}"
    if status in (401, 403):
        raise AuthorizationError(message)
    if status == 404:
        raise ResourceNotFoundError(message)
    if status == 429:
        raise RateLimitedError(message, retry_after=_retry_after(response))
    if status >= 500:
        raise TransientProviderError(message)
    raise ProviderError(message, {"status_code": status})


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _to_remote(kind: str, body: dict[str, Any]) -> RemoteResource:
    return RemoteResource(
        id=str(body.get("id", "")),
        kind=kind,
        inputs=dict(body.get("inputs") or {}),
        outputs=dict(body.get("outputs") or {}),
    )
