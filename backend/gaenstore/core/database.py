"""
GAEN Key Store Database Connection
SQLAlchemy engine and session management (PostgreSQL or SQLite)
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gaenstore.core.config import settings

# Declarative base for models
Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # The stdlib driver waits on the database write lock for `timeout` seconds
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000,
            },
        }
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Verify connections before using
        "connect_args": {
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        },
    }


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create an engine for the given URL (defaults to settings.DATABASE_URL).

    postgres:// URLs are normalized to the psycopg2 driver.
    """
    url = url or settings.DATABASE_URL
    url = url.replace("postgresql+asyncpg://", "postgresql://")
    url = url.replace("postgres://", "postgresql://")

    engine = create_engine(
        url,
        echo=settings.DB_ECHO if echo is None else echo,
        **_engine_kwargs(url),
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Process-wide engine built from settings (created on first use)"""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


@contextmanager
def get_sync_db() -> Iterator[Session]:
    """
    Get a database session bound to the process-wide engine.

    Usage:
        with get_sync_db() as db:
            result = db.execute(query)
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables if needed and seed the exposed id counter"""
    from gaenstore import models  # noqa: F401  registers tables on Base
    from gaenstore.storage import get_storage_adapter

    engine = engine or get_engine()
    Base.metadata.create_all(engine)

    adapter = get_storage_adapter(engine.dialect.name)
    with create_session_factory(engine)() as session, session.begin():
        adapter.ensure_sequence(session)


def close_db() -> None:
    """Dispose the process-wide connection pool"""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
