"""Async engine, session helpers and schema bootstrap for media records."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config.settings import DatabaseConfig, settings

# Registers the media and subject tables on Base.metadata
from app.models import Base

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _resolve_schema(config: DatabaseConfig) -> str | None:
    """Postgres schema to place tables in, or None for the default search_path.

    Ignored for non-Postgres URLs (e.g. a local SQLite file).
    """

    raw = (config.schema_name or "").strip()
    if not raw:
        return None
    if make_url(config.url).get_backend_name() != "postgresql":
        logger.info("Ignoring DB_SCHEMA_NAME=%s for non-Postgres database", raw)
        return None
    if not _IDENTIFIER.fullmatch(raw):
        logger.warning("Ignoring invalid schema name %r; using default search_path", raw)
        return None
    return raw


SCHEMA_NAME = _resolve_schema(settings.database)

if SCHEMA_NAME:
    for table in Base.metadata.tables.values():
        if table.schema is None:
            table.schema = SCHEMA_NAME


def _create_engine(config: DatabaseConfig) -> AsyncEngine:
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    # Serverless Postgres drops idle connections; open one per session instead.
    if config.serverless or settings.debug:
        options["poolclass"] = NullPool
    return create_async_engine(config.url, **options)


engine: AsyncEngine = _create_engine(settings.database)

SessionFactory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def _set_search_path(target: Any) -> None:
    if SCHEMA_NAME:
        await target.execute(text(f'SET search_path TO "{SCHEMA_NAME}", public'))


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a session bound to the configured schema.

    This is the session provider handed to ``MediaRepository`` so each
    repository call commits independently of the HTTP request.
    """

    async with SessionFactory() as session:
        await _set_search_path(session)
        yield session


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with session_scope() as session:
        yield session


async def init_models() -> None:
    """Create the schema (if configured) and any missing tables."""

    async with engine.begin() as conn:
        if SCHEMA_NAME:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA_NAME}"'))
        await _set_search_path(conn)
        await conn.run_sync(Base.metadata.create_all)

    logger.info(
        "Ensured media tables (%s) in schema %s",
        ", ".join(sorted(Base.metadata.tables)),
        SCHEMA_NAME or "default",
    )


async def dispose_engine() -> None:
    await engine.dispose()
