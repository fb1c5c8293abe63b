"""Database engine, session factory and unit-of-work helpers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from timesheet_tracker.exceptions import ConflictError, StoreFailureError, TimesheetError
from timesheet_tracker.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def create_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create async database engine."""
    if database_url.startswith("postgresql"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 20)
    return create_async_engine(database_url, echo=False, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory handed to request handlers."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for unique-key violations (SQLSTATE 23505 or SQLite's UNIQUE message)."""
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == UNIQUE_VIOLATION
    return "unique constraint" in str(exc.orig).lower()


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one transaction: commit on success, roll back on any error.

    Store errors that escape the block are translated: unique-constraint
    violations become ``ConflictError``, anything else ``StoreFailureError``.
    Application errors pass through unchanged after the rollback.
    """
    try:
        yield session
        await session.commit()
    except TimesheetError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            logger.exception("Integrity violation, transaction rolled back")
            raise StoreFailureError() from exc
        logger.info("Unique constraint violation rolled back: %s", exc.orig)
        raise ConflictError("Operation conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Store failure, transaction rolled back")
        raise StoreFailureError() from exc
    except Exception:
        await session.rollback()
        raise
