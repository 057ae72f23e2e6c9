"""SQLAlchemy database configuration and session management.

Provides the engine and session factory backing the persistent state
store. SQLite is the default; any SQLAlchemy URL with JSON support works.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine as sa_create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from fleetsync.common.config import StoreSettings, get_settings
from fleetsync.models.base import Base


def create_engine(settings: StoreSettings | None = None) -> Engine:
    """Create a SQLAlchemy engine for the state store.

    Args:
        settings: Store settings. Uses global settings if not provided.

    Returns:
        Configured engine instance.
    """
    if settings is None:
        settings = get_settings().store

    url = make_url(settings.url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    return sa_create_engine(url, echo=settings.echo)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create session factory for database operations."""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def init_schema(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Get a database session as context manager.

    Yields:
        Session that commits on success and rolls back on error.

    Example:
        with session_scope(factory) as session:
            session.add(record)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
