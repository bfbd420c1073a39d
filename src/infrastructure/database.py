"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  The
engine is built once per process by the application lifespan and handed
to request handlers through ``app.state``; nothing here is created at
import time.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.domain.exceptions import StorageUnavailable

T = TypeVar("T")


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Connection loss, pool exhaustion and lock timeouts are transient; data
# errors (IntegrityError, ...) are not and propagate untouched.
TRANSIENT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


def translate_storage_errors(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Re-raise transient storage failures as ``StorageUnavailable``."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            raise StorageUnavailable() from exc

    return wrapper
