"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

Two kinds of sessions come out of here:
- get_db: nothing bound. Used by the auth flows, which only touch
  accounts/credentials (not row-secured).
- scoped_session(principal): every connection it checks out is stamped
  with the principal's account id, so PostgreSQL RLS filters rows.
  On SQLite, RowSecuredSession applies the same owner filter.
"""

from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from wayfarer.auth.principal import Principal
from wayfarer.config import settings
from wayfarer.db.models import Trip
from wayfarer.db.session_context import SessionContextBinder


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return kwargs
    # Connection pool: min 5, max 20 connections.
    return {"pool_size": settings.db_pool_size, "max_overflow": settings.db_max_overflow}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

# Rebinds the account id on every checkout of every pooled connection.
session_binder = SessionContextBinder(settings.rls_session_variable)
session_binder.install(engine)


class RowSecuredSession(Session):
    """Sync session behind scoped_session(). Filters row-secured
    entities on databases without RLS (SQLite)."""


session_binder.emulate_row_security(RowSecuredSession, {Trip: Trip.owner_id})

# Session factory: each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def scoped_session(principal: Optional[Principal]) -> AsyncSession:
    """A session whose connections carry `principal`'s account id."""
    return async_session_factory(
        bind=session_binder.bind_engine(engine, principal),
        sync_session_class=RowSecuredSession,
    )


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
