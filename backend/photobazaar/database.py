"""
PhotoBazaar Backend: Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory and the FastAPI session
       dependency.
How:   One AsyncSession per request. The dependency commits when the handler
       returns and rolls back when it raises, so every request is a single
       transaction. Entitlement counters rely on this: their conditional
       UPDATEs and inserts either all land or none do.

Connection pooling (PostgreSQL):
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite (local runs, tests) uses SQLAlchemy's default pool and an explicit
    BEGIN so that SAVEPOINTs nest correctly.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from photobazaar.config import settings


def _build_engine() -> AsyncEngine:
    if settings.is_sqlite:
        sqlite_engine = create_async_engine(
            settings.database_url,
            echo=settings.log_level == "DEBUG",
        )
        _enable_sqlite_savepoints(sqlite_engine)
        return sqlite_engine

    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=settings.log_level == "DEBUG",
    )


def _enable_sqlite_savepoints(sqlite_engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite.

    The sqlite3 driver defers BEGIN until the first DML statement, which makes
    an early SAVEPOINT the outermost transaction. Disabling the driver's
    handling and emitting BEGIN ourselves keeps begin_nested() a true savepoint.
    """

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = _build_engine()

# expire_on_commit=False: response serialization reads attributes after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits on success, rolls back on any exception and re-raises so the
    global handlers can shape the error response.

    Example:
        @router.get("/photos")
        async def list_photos(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables() -> None:
    """Create any missing tables from the ORM metadata."""
    # Registers every model on Base.metadata
    import photobazaar.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close all pooled connections. Called on application shutdown."""
    await engine.dispose()
