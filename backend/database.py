"""Database engine, session factory and declarative base."""

from collections.abc import AsyncGenerator

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from config import get_settings

settings = get_settings()

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
async_session = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


class Base(DeclarativeBase):
    """Declarative base for all models."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a database session."""
    async with async_session() as db:
        yield db


def dialect_insert(db: AsyncSession, model):
    """Build an INSERT that supports ON CONFLICT for the session's backend.

    PostgreSQL in production; SQLite backs the test-suite. Both expose the same
    ``on_conflict_do_update`` / ``excluded`` API.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
