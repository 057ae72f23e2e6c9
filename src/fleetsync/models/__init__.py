"""SQLAlchemy models for persisted state."""

from fleetsync.models.base import Base, TimestampMixin
from fleetsync.models.state import StateRecord

__all__ = [
    "Base",
    "StateRecord",
    "TimestampMixin",
]
