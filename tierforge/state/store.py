"""Persisted state record.

A JSON document mapping resource address to its last-known remote
attributes::

    {"version": 1, "serial": 7, "lineage": "...", "resources": {"subnet.app": {...}}}

Writes go to a temporary file in the same directory followed by
``os.replace`` so a crash never leaves a half-written record.  Each address
has its own asyncio lock (one writer per record) and flushes are serialized,
so several nodes finishing in the same wave cannot lose each other's updates.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import tempfile
from collections import defaultdict
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog

from tierforge.errors import TierforgeError
from tierforge.models.state import ResourceRecord
from tierforge.state.locking import NullStateLock, StateLock

_log = structlog.get_logger(component="state.store")

STATE_VERSION = 1


class StateStore:
    """Explicit state repository handed to the reconciler and executor.

    ``path=None`` keeps the record in memory only.
    """

    def __init__(self, path: str | Path | None = None, lock: StateLock | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = lock or NullStateLock()
        self._records: dict[str, ResourceRecord] = {}
        self._serial = 0
        self._lineage = str(uuid4())
        self._record_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._flush_lock = asyncio.Lock()
        self.load()

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def serial(self) -> int:
        return self._serial

    @property
    def lock(self) -> StateLock:
        return self._lock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> None:
        """(Re)read the record from disk; a missing file is an empty state."""
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise TierforgeError(f"cannot read state file {self._path}: {exc}") from exc
        if data.get("version") != STATE_VERSION:
            raise TierforgeError(
                f"unsupported state version {data.get('version')!r} in {self._path}",
                {"expected": STATE_VERSION},
            )
        self._serial = int(data.get("serial", 0))
        self._lineage = data.get("lineage") or self._lineage
        self._records = {
            address: ResourceRecord.from_dict(raw) for address, raw in (data.get("resources") or {}).items()
        }
        _log.debug("state_loaded", path=str(self._path), resources=len(self._records), serial=self._serial)

    def get(self, address: str) -> ResourceRecord | None:
        record = self._records.get(address)
        return copy.deepcopy(record) if record is not None else None

    def records(self) -> dict[str, ResourceRecord]:
        return copy.deepcopy(self._records)

    def addresses(self) -> list[str]:
        return sorted(self._records)

    def outputs(self, address: str) -> dict[str, Any] | None:
        record = self._records.get(address)
        return dict(record.outputs) if record is not None else None

    def __contains__(self, address: object) -> bool:
        return address in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, record: ResourceRecord) -> None:
        """Store *record* and persist immediately."""
        async with self._record_locks[record.address]:
            self._records[record.address] = copy.deepcopy(record)
            await self._flush()

    async def remove(self, address: str) -> None:
        async with self._record_locks[address]:
            if self._records.pop(address, None) is not None:
                await self._flush()

    async def mark_tainted(self, address: str) -> None:
        """Flag a record whose mutation was interrupted."""
        async with self._record_locks[address]:
            record = self._records.get(address)
            if record is None:
                return
            self._records[address] = replace(
                record, tainted=True, updated_at=datetime.now(tz=UTC).isoformat()
            )
            await self._flush()

    async def _flush(self) -> None:
        async with self._flush_lock:
            self._serial += 1
            snapshot = self.to_dict()
            if self._path is not None:
                await asyncio.to_thread(atomic_write_json, self._path, snapshot)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "serial": self._serial,
            "lineage": self._lineage,
            "resources": {address: self._records[address].to_dict() for address in sorted(self._records)},
        }


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True, default=str)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
