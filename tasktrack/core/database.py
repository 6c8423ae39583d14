"""
Database connection and session management.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, contextmanager

import structlog
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as SATimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from tasktrack.core.config import get_settings
from tasktrack.core.errors import StoreError, TaskTrackError, TransientStoreError

log = structlog.get_logger()
settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create all tables (development only)."""
    # Populate metadata before create_all
    import tasktrack.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Services own their commits; anything left pending when the request
    finishes is rolled back on error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextmanager
def store_errors(operation: str):
    """Translate driver failures into the store error taxonomy.

    Core errors raised inside the block pass through untouched.
    """
    try:
        yield
    except TaskTrackError:
        raise
    except (OperationalError, InterfaceError, DisconnectionError, SATimeoutError) as exc:
        log.warning("store.transient_error", operation=operation, error=str(exc))
        raise TransientStoreError(f"Store unavailable during {operation}") from exc
    except SQLAlchemyError as exc:
        log.error("store.error", operation=operation, error=str(exc))
        raise StoreError(f"Store error during {operation}") from exc
