"""Locking capabilities injected into the state store.

The store itself never decides how concurrent invocations are excluded; it
is handed a StateLock.  FileStateLock covers the local-file case, NullStateLock
is for tests and for backends that lock elsewhere.
"""

from __future__ import annotations

import asyncio
import json
import os
import socket
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from uuid import uuid4

import structlog

from tierforge.errors import StateLockError

_log = structlog.get_logger(component="state.locking")


class StateLock(ABC):
    """Exclusive lock over a state record, held for a whole run."""

    @abstractmethod
    async def acquire(self) -> None:
        """Take the lock or raise StateLockError."""

    @abstractmethod
    async def release(self) -> None:
        """Release the lock; releasing an unheld lock is a no-op."""

    async def __aenter__(self) -> StateLock:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()


class NullStateLock(StateLock):
    """Lock that always succeeds."""

    async def acquire(self) -> None:
        return None

    async def release(self) -> None:
        return None


class FileStateLock(StateLock):
    """Lock file created with O_EXCL next to the state file.

    The file carries holder metadata so a blocked invocation can report who
    holds the lock.
    """

    def __init__(self, state_path: str | Path, operation: str = "apply") -> None:
        self._path = Path(f"{state_path}.lock")
        self._operation = operation
        self._lock_id = str(uuid4())
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    async def acquire(self) -> None:
        await asyncio.to_thread(self._acquire_sync)
        self._held = True
        _log.debug("state_lock_acquired", path=str(self._path), lock_id=self._lock_id)

    async def release(self) -> None:
        if not self._held:
            return
        await asyncio.to_thread(self._path.unlink, True)
        self._held = False
        _log.debug("state_lock_released", path=str(self._path), lock_id=self._lock_id)

    def _acquire_sync(self) -> None:
        info = {
            "id": self._lock_id,
            "operation": self._operation,
            "who": f"{os.environ.get('USER', 'unknown')}@{socket.gethostname()}",
            "pid": os.getpid(),
            "created": datetime.now(tz=UTC).isoformat(),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise StateLockError(
                f"state is locked: {self._path}",
                details=self._read_holder(),
            ) from None
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(info, handle)

    def _read_holder(self) -> dict[str, object]:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
