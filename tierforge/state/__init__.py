"""State record persistence and locking.

Submodules:
    store   -- StateStore: atomic JSON state record with per-address writers.
    locking -- StateLock capability (file lock, null lock).
"""

from __future__ import annotations

from tierforge.models.config import StateConfig
from tierforge.state.locking import FileStateLock, NullStateLock, StateLock
from tierforge.state.store import StateStore

__all__ = [
    "FileStateLock",
    "NullStateLock",
    "StateLock",
    "StateStore",
    "build_state_store",
]


def build_state_store(config: StateConfig, operation: str = "apply") -> StateStore:
    """Build a StateStore with the lock kind named in *config*."""
    lock: StateLock = FileStateLock(config.path, operation=operation) if config.lock == "file" else NullStateLock()
    return StateStore(config.path, lock=lock)
