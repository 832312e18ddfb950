"""Database utilities for persistent storage of zones and reference data.

This module provides a lightweight asyncpg connection pool along with the
schema the Postgres-backed stores expect.  All helpers gracefully fall back to
`None` when `DB_URL` is not configured so the application can continue to
operate with in-memory stores during development.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import asyncpg

from .config import get_settings

logger = logging.getLogger(__name__)

_POOL: Any | None = None
_POOL_LOCK = asyncio.Lock()

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS price_action (
    symbol        TEXT  PRIMARY KEY,
    order_blocks  JSONB NOT NULL DEFAULT '[]'::jsonb,
    fvg           JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS margin (
    symbol  TEXT             PRIMARY KEY,
    name    TEXT             NOT NULL,
    margin  DOUBLE PRECISION NOT NULL
);

CREATE TABLE IF NOT EXISTS scanner_strategy (
    name         TEXT    PRIMARY KEY,
    scan_clause  TEXT    NOT NULL,
    active       BOOLEAN NOT NULL DEFAULT TRUE
);
"""


def _normalise_dsn(db_url: str) -> str:
    if db_url.startswith("postgres://"):
        return "postgresql://" + db_url[len("postgres://") :]
    return db_url


async def _create_pool() -> asyncpg.Pool | None:
    settings = get_settings()
    db_url = (settings.db_url or "").strip()
    if not db_url:
        logger.info("DB_URL not configured; zones and reference data will remain in-memory")
        return None
    try:
        pool = await asyncpg.create_pool(dsn=_normalise_dsn(db_url), min_size=1, max_size=5, statement_cache_size=0)
        logger.info("database connection pool initialised")
        return pool
    except (OSError, asyncpg.PostgresError) as exc:  # pragma: no cover - only hit when DB misconfigured
        logger.error("failed to initialise database pool", exc_info=exc)
        return None


async def get_pool() -> Any | None:
    """Return an asyncpg pool, initialising it on first use."""

    global _POOL
    if _POOL is not None:
        return _POOL
    async with _POOL_LOCK:
        if _POOL is None:
            _POOL = await _create_pool()
    return _POOL


async def ensure_schema() -> bool:
    """Create required tables if the database is available.

    Returns:
        bool: True when the schema exists (or was created), False otherwise.
    """

    pool = await get_pool()
    if pool is None:
        return False
    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(SCHEMA_DDL)
        logger.info("database schema ensured for price action tables")
        return True
    except asyncpg.PostgresError as exc:  # pragma: no cover - depends on external DB state
        logger.error("failed to ensure database schema", exc_info=exc)
        return False


async def close_pool() -> None:
    global _POOL
    if _POOL is not None:
        await _POOL.close()
        _POOL = None


__all__ = ["SCHEMA_DDL", "close_pool", "ensure_schema", "get_pool"]
