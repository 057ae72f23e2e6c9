"""Persisted inventory state records."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetsync.models.base import Base, TimestampMixin


class StateRecord(Base, TimestampMixin):
    """One key-value entry of inventory state.

    ``kind`` partitions the key space (hosts, projects, providers) and
    ``payload`` holds the serialized entity.
    """

    __tablename__ = "state_records"

    kind: Mapped[str] = mapped_column(String(50), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
