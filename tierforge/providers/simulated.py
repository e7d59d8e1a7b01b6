"""In-memory cloud used by tests and local dry runs.

Objects live in a dict keyed by id and can be persisted to a JSON file so
successive CLI invocations see the same "cloud".  Outputs are synthesized
from the kind's schema: an output named like an input echoes it, IP-ish
fields get a deterministic private address, ids get a deterministic UUID.

Failures are injected per address::

    provider.fail("subnet.app", TransientProviderError("boom"), times=2)
    provider.fail("vm_scale_set.backend", ProviderError("quota exceeded"))
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import secrets
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from tierforge.errors import ProviderError, ResourceNotFoundError
from tierforge.providers.base import CloudProvider, RemoteResource
from tierforge.schema.catalog import default_registry
from tierforge.schema.types import FieldType, SchemaRegistry
from tierforge.state.store import atomic_write_json

_log = structlog.get_logger(component="providers.simulated")


@dataclass
class _Fault:
    error: ProviderError
    remaining: int | None  # None: fails forever
    operations: frozenset[str]


class SimulatedProvider(CloudProvider):
    """Deterministic fake provider."""

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        persist_path: str | Path | None = None,
        latency: float = 0.0,
    ) -> None:
        self._registry = registry or default_registry()
        self._path = Path(persist_path) if persist_path else None
        self._latency = latency
        self._objects: dict[str, dict[str, Any]] = {}
        self._faults: dict[str, list[_Fault]] = {}
        self._counter = 0
        self.calls: list[tuple[str, str]] = []
        self._load()

    @property
    def name(self) -> str:
        return "simulated"

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def fail(
        self,
        address: str,
        error: ProviderError,
        times: int | None = None,
        operations: tuple[str, ...] = ("create", "update", "delete"),
    ) -> None:
        """Make calls against *address* raise *error*.

        ``times=None`` fails every call; otherwise the fault clears after
        *times* failures.
        """
        self._faults.setdefault(address, []).append(
            _Fault(error=error, remaining=times, operations=frozenset(operations))
        )

    def clear_faults(self, address: str | None = None) -> None:
        if address is None:
            self._faults.clear()
        else:
            self._faults.pop(address, None)

    def drift(self, address: str, field: str, value: Any) -> None:
        """Change an input out-of-band, as a console edit would."""
        obj = self._find(address)
        if obj is None:
            raise ResourceNotFoundError(f"no simulated object for {address}")
        obj["inputs"][field] = value
        self._save()

    def remove_out_of_band(self, address: str) -> None:
        obj = self._find(address)
        if obj is not None:
            del self._objects[obj["id"]]
            self._save()

    def find(self, address: str) -> RemoteResource | None:
        obj = self._find(address)
        return self._to_remote(obj) if obj is not None else None

    def objects(self) -> list[RemoteResource]:
        return [self._to_remote(obj) for obj in self._objects.values()]

    def call_order(self, operation: str) -> list[str]:
        return [address for op, address in self.calls if op == operation]

    # ------------------------------------------------------------------
    # CloudProvider
    # ------------------------------------------------------------------

    async def create(self, kind: str, name: str, inputs: dict[str, Any]) -> RemoteResource:
        address = f"{kind}.{name}"
        await self._simulate("create", address)
        self._counter += 1
        resource_id = f"/simulated/{kind}/{name}/{self._counter}"
        obj = {
            "id": resource_id,
            "kind": kind,
            "name": name,
            "inputs": copy.deepcopy(inputs),
            "outputs": self._synthesize(kind, name, resource_id, inputs),
        }
        self._objects[resource_id] = obj
        self._save()
        _log.debug("simulated_create", address=address, id=resource_id)
        return self._to_remote(obj)

    async def read(self, kind: str, resource_id: str) -> RemoteResource | None:
        obj = self._objects.get(resource_id)
        await self._simulate("read", f"{kind}.{obj['name']}" if obj else resource_id)
        return self._to_remote(obj) if obj is not None else None

    async def update(
        self,
        kind: str,
        resource_id: str,
        inputs: dict[str, Any],
        changed: list[str],
    ) -> RemoteResource:
        obj = self._objects.get(resource_id)
        if obj is None:
            raise ResourceNotFoundError(f"{kind} {resource_id} not found")
        await self._simulate("update", f"{kind}.{obj['name']}")
        obj["inputs"] = copy.deepcopy(inputs)
        schema = self._registry.get(kind)
        if schema is not None:
            for field in schema.outputs:
                if field in inputs and inputs[field] is not None:
                    obj["outputs"][field] = copy.deepcopy(inputs[field])
        self._save()
        _log.debug("simulated_update", address=f"{kind}.{obj['name']}", changed=changed)
        return self._to_remote(obj)

    async def delete(self, kind: str, resource_id: str) -> None:
        obj = self._objects.get(resource_id)
        if obj is None:
            raise ResourceNotFoundError(f"{kind} {resource_id} not found")
        await self._simulate("delete", f"{kind}.{obj['name']}")
        self._objects.pop(resource_id, None)
        self._save()
        _log.debug("simulated_delete", address=f"{kind}.{obj['name']}", id=resource_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _simulate(self, operation: str, address: str) -> None:
        self.calls.append((operation, address))
        if self._latency:
            await asyncio.sleep(self._latency)
        for fault in self._faults.get(address, []):
            if operation not in fault.operations:
                continue
            if fault.remaining is None:
                raise fault.error
            if fault.remaining > 0:
                fault.remaining -= 1
                raise fault.error

    def _find(self, address: str) -> dict[str, Any] | None:
        kind, _, name = address.partition(".")
        for obj in self._objects.values():
            if obj["kind"] == kind and obj["name"] == name:
                return obj
        return None

    def _synthesize(self, kind: str, name: str, resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
        outputs: dict[str, Any] = {"id": resource_id}
        schema = self._registry.get(kind)
        if schema is None:
            return outputs
        for field, field_type in schema.outputs.items():
            if field == "id":
                continue
            if inputs.get(field) is not None:
                outputs[field] = copy.deepcopy(inputs[field])
            else:
                outputs[field] = _synthetic_value(field, field_type, kind, name, resource_id, inputs)
        return outputs

    @staticmethod
    def _to_remote(obj: dict[str, Any]) -> RemoteResource:
        return RemoteResource(
            id=obj["id"],
            kind=obj["kind"],
            inputs=copy.deepcopy(obj["inputs"]),
            outputs=copy.deepcopy(obj["outputs"]),
        )

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        data = json.loads(self._path.read_text(encoding="utf-8"))
        self._counter = int(data.get("counter", 0))
        self._objects = dict(data.get("objects") or {})
        _log.debug("simulated_cloud_loaded", path=str(self._path), objects=len(self._objects))

    def _save(self) -> None:
        if self._path is None:
            return
        atomic_write_json(self._path, {"counter": self._counter, "objects": self._objects})


def _synthetic_value(
    field: str,
    field_type: FieldType,
    kind: str,
    name: str,
    resource_id: str,
    inputs: dict[str, Any],
) -> Any:
    digest = hashlib.sha256(f"{resource_id}#{field}".encode()).digest()
    words = field.split("_")
    if field_type is FieldType.STRING:
        if "ip" in words or field == "ip_address":
            return f"10.{digest[0]}.{digest[1]}.{max(digest[2], 4)}"
        if "fqdn" in words or field == "dns_name":
            return f"{name}.{kind.replace('_', '-')}.simulated.internal"
        if field.endswith("uri"):
            return f"https://{name}.{kind.replace('_', '-')}.simulated.internal/"
        if field == "result":
            return secrets.token_urlsafe(int(inputs.get("length") or 16))
        if field.endswith("_id") or field in ("guid", "version"):
            return str(uuid.UUID(bytes=digest[:16]))
        return f"{name}-{digest.hex()[:8]}"
    if field_type is FieldType.NUMBER:
        return 0
    if field_type is FieldType.BOOL:
        return False
    if field_type is FieldType.LIST:
        return []
    if field_type is FieldType.MAP:
        return {}
    return None
