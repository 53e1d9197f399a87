"""SQLAlchemy 2.0 async engine for the ``database`` record-source backend.

The dashboard only reads; the ORM base exists so tests can create the
store-level table.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings

if TYPE_CHECKING:
    from app.core.config import Settings


class Base(DeclarativeBase):
    pass


def create_engine_from_settings(settings: Settings | None = None) -> AsyncEngine:
    """Build an async engine for ``settings.database_url``.

    Args:
        settings: Settings to use; the cached app settings when omitted.

    Returns:
        Engine with pre-ping so stale pooled connections are replaced.
    """
    settings = settings or get_settings()
    return create_async_engine(settings.database_url, echo=settings.debug, pool_pre_ping=True)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)
