"""
Async SQLAlchemy engine and session factory.

Production runs on PostgreSQL through ``asyncpg``; a ``sqlite+aiosqlite``
URL is accepted for local runs, in which case the pool options are left to
SQLAlchemy's SQLite defaults.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings


def engine_options(url: str) -> dict:
    options = {"echo": settings.database_echo}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# Booking rows are returned to the API layer after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the dispatch tables."""
