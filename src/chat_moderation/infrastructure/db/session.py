"""Async SQLAlchemy session factory helpers."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chat_moderation.infrastructure.db.errors import translate_store_errors


def create_session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    """Create a reusable async session factory for the provided database URL."""

    engine = create_async_engine(database_url)
    return async_sessionmaker(engine, expire_on_commit=False)


async def verify_store_connection(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Run a trivial query, raising StoreUnavailableError when the database is unreachable."""

    with translate_store_errors("verify_store_connection"):
        async with session_factory() as session:
            await session.execute(sa.text("SELECT 1"))
