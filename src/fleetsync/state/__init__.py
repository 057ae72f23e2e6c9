"""Persistent inventory state."""

from fleetsync.state.repository import InventoryRepository, host_write, project_write
from fleetsync.state.store import (
    InMemoryStateStore,
    SqlStateStore,
    StateKind,
    StateStore,
    StateWrite,
)

__all__ = [
    "InMemoryStateStore",
    "InventoryRepository",
    "SqlStateStore",
    "StateKind",
    "StateStore",
    "StateWrite",
    "host_write",
    "project_write",
]
