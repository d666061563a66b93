"""Async SQLAlchemy engine, session factory and declarative base."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from marketplace.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all models."""


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    connect_args = {}
    if url.startswith("sqlite"):
        # Writers wait for the file lock instead of failing immediately
        connect_args["timeout"] = 30
    return create_async_engine(url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine.

    expire_on_commit is disabled so committed rows can be returned to callers
    after the unit of work closes its session.
    """
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.database_echo)
SessionLocal = build_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with SessionLocal() as session:
        yield session
