"""State record data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class ResourceRecord:
    """Last-known remote attributes of one provisioned resource.

    ``dependencies`` holds the addresses the resource depended on when it was
    last applied, so teardown can be ordered even after the declaration that
    produced it is gone.  A ``tainted`` record was interrupted mid-mutation
    and is replaced on the next apply.
    """

    kind: str
    name: str
    id: str
    inputs: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    tainted: bool = False
    updated_at: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "id": self.id,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "dependencies": sorted(self.dependencies),
            "tainted": self.tainted,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceRecord:
        return cls(
            kind=data["kind"],
            name=data["name"],
            id=data.get("id", ""),
            inputs=dict(data.get("inputs") or {}),
            outputs=dict(data.get("outputs") or {}),
            dependencies=list(data.get("dependencies") or []),
            tainted=bool(data.get("tainted", False)),
            updated_at=data.get("updated_at", ""),
        )
