"""Key-value persistence for inventory state.

Entities are stored as JSON payloads addressed by ``(kind, key)``.
``save_many`` applies a batch of writes atomically: either every write
lands or none does.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fleetsync.common.database import create_session_factory, init_schema, session_scope
from fleetsync.common.exceptions import StateStoreError
from fleetsync.common.logging import get_logger
from fleetsync.models.state import StateRecord

logger = get_logger(__name__)

Payload = dict[str, Any]


class StateKind(str, Enum):
    """Partitions of the state key space."""

    HOST = "host"
    PROJECT = "project"
    PROVIDER = "provider"


@dataclass(frozen=True)
class StateWrite:
    """A pending write; a ``None`` payload deletes the entry."""

    kind: StateKind
    key: str
    payload: Payload | None


class StateStore(ABC):
    """Load/save key-value interface over persisted state."""

    @abstractmethod
    def load(self, kind: StateKind, key: str) -> Payload | None:
        """Load one payload, or None if absent."""

    @abstractmethod
    def load_all(self, kind: StateKind) -> dict[str, Payload]:
        """Load every payload of a kind, keyed by entry key."""

    @abstractmethod
    def save_many(self, writes: Iterable[StateWrite]) -> None:
        """Apply all writes atomically."""

    def save(self, kind: StateKind, key: str, payload: Payload) -> None:
        self.save_many([StateWrite(kind, key, payload)])

    def delete(self, kind: StateKind, key: str) -> None:
        self.save_many([StateWrite(kind, key, None)])


class InMemoryStateStore(StateStore):
    """Process-local store, used for tests and dry runs."""

    def __init__(self) -> None:
        self._entries: dict[tuple[StateKind, str], Payload] = {}

    def load(self, kind: StateKind, key: str) -> Payload | None:
        payload = self._entries.get((kind, key))
        return copy.deepcopy(payload) if payload is not None else None

    def load_all(self, kind: StateKind) -> dict[str, Payload]:
        return {
            key: copy.deepcopy(payload)
            for (entry_kind, key), payload in sorted(self._entries.items())
            if entry_kind == kind
        }

    def save_many(self, writes: Iterable[StateWrite]) -> None:
        # Build the next state aside and swap it in
        entries = dict(self._entries)
        for write in writes:
            if write.payload is None:
                entries.pop((write.kind, write.key), None)
            else:
                entries[(write.kind, write.key)] = copy.deepcopy(write.payload)
        self._entries = entries


class SqlStateStore(StateStore):
    """Store backed by a SQLAlchemy database (SQLite by default)."""

    def __init__(self, engine: Engine, create_schema: bool = True) -> None:
        self._engine = engine
        self._session_factory: sessionmaker[Session] = create_session_factory(engine)
        if create_schema:
            init_schema(engine)

    def load(self, kind: StateKind, key: str) -> Payload | None:
        try:
            with session_scope(self._session_factory) as session:
                record = session.get(StateRecord, (kind.value, key))
                return dict(record.payload) if record else None
        except SQLAlchemyError as exc:
            raise StateStoreError(f"Failed to load {kind.value} {key}", cause=exc) from exc

    def load_all(self, kind: StateKind) -> dict[str, Payload]:
        try:
            with session_scope(self._session_factory) as session:
                records = session.scalars(
                    select(StateRecord)
                    .where(StateRecord.kind == kind.value)
                    .order_by(StateRecord.key)
                ).all()
                return {record.key: dict(record.payload) for record in records}
        except SQLAlchemyError as exc:
            raise StateStoreError(f"Failed to load {kind.value} entries", cause=exc) from exc

    def save_many(self, writes: Iterable[StateWrite]) -> None:
        # Last write per entry wins, as in the in-memory store
        writes = list({(write.kind, write.key): write for write in writes}.values())
        try:
            with session_scope(self._session_factory) as session:
                for write in writes:
                    record = session.get(StateRecord, (write.kind.value, write.key))
                    if write.payload is None:
                        if record is not None:
                            session.delete(record)
                    elif record is None:
                        session.add(
                            StateRecord(kind=write.kind.value, key=write.key, payload=write.payload)
                        )
                    else:
                        record.payload = write.payload
        except SQLAlchemyError as exc:
            raise StateStoreError("Failed to commit state changes", cause=exc) from exc

        logger.debug("Committed state changes", writes=len(writes))
