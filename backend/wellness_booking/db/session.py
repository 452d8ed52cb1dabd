"""
Engine and session factory construction, request-scoped sessions, and the
transaction retry helper used by every ledger / reservation mutation.

The engine and session factory are built once in the application lifespan and
stored on `app.state`; routes and services receive the factory through
dependency injection so tests can point them at a throwaway database.
"""

import asyncio
import random
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from fastapi import Depends, Request
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from wellness_booking.core.config import Settings, get_settings
from wellness_booking.core.exceptions import ServiceUnavailable
from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import db_retries

logger = get_logger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure and deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for read endpoints. Commits on success."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def is_transient_conflict(exc: DBAPIError) -> bool:
    """
    True for errors where re-running the whole transaction can succeed:
    lock timeouts / locked database (OperationalError) and PostgreSQL
    serialization failures or deadlocks.
    """
    if isinstance(exc, OperationalError):
        return True
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in RETRYABLE_SQLSTATES


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """
    Run `work` inside a fresh session and transaction.

    Transient conflicts roll back and retry the whole unit with exponential
    backoff and jitter. After the last attempt a ServiceUnavailable is raised,
    so callers can tell "try again" apart from capacity or duplicate errors,
    which propagate untouched on the first attempt.
    """
    settings = get_settings()
    attempts = max_attempts or settings.TX_MAX_ATTEMPTS
    base = settings.TX_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base

    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as db:
                async with db.begin():
                    return await work(db)
        except DBAPIError as exc:
            if not is_transient_conflict(exc):
                raise
            db_retries.inc()
            if attempt == attempts:
                logger.error(
                    "transaction_retries_exhausted",
                    attempts=attempts,
                    error=str(exc.orig),
                )
                raise ServiceUnavailable() from exc
            delay = base * (2 ** (attempt - 1)) * (1 + random.random())
            logger.info(
                "transaction_retry",
                attempt=attempt,
                delay_s=round(delay, 3),
                error=str(exc.orig),
            )
            await asyncio.sleep(delay)

    raise ServiceUnavailable()
