"""
Async database engine and session factory.

Sessions are request-scoped. Services own their commits: a swap transition
commits the state change before the activity log entry is written.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

logger = logging.getLogger(__name__)

async_engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and roll back anything left uncommitted."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def rollback_quietly(session: AsyncSession) -> None:
    """Roll back; a connection that is already gone is logged, not raised."""
    try:
        await session.rollback()
    except SQLAlchemyError as exc:
        logger.warning("Rollback failed on a broken connection: %s", exc)
