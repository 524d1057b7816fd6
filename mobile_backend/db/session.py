"""
Database Engine Management
==========================

Async SQLAlchemy engines for the Supabase Postgres database.

Engines are cached per URL so every request handled by this worker shares
one connection pool; handlers only ever see the ``AdminClient`` built on
top (see ``mobile_backend.db.admin``).
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mobile_backend.config import settings, to_async_database_url

logger = logging.getLogger(__name__)

# Engine instances keyed by async URL
_engines: dict[str, AsyncEngine] = {}


def get_engine(database_url: str) -> AsyncEngine:
    """
    Get or create the async engine for ``database_url``.

    Pool settings:
    - pool_size / max_overflow: small, webhook traffic is bursty but light
    - pool_recycle: Recycle connections every 5 minutes (matches typical
      Supabase/PgBouncer idle timeouts)
    - pool_use_lifo: Prefer the most-recently-returned connection so it is
      more likely alive
    - pool_timeout: a stuck checkout surfaces as a retryable storage error
    """
    url = to_async_database_url(database_url)
    if not url:
        raise ValueError(
            "Database URL not configured. "
            "Please set SUPABASE_DATABASE_URL environment variable."
        )

    engine = _engines.get(url)
    if engine is None:
        engine = create_async_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=False,
            pool_recycle=300,
            pool_use_lifo=True,
            pool_timeout=30,
        )
        _engines[url] = engine

    return engine


async def init_db() -> None:
    """
    Open one connection up-front so the first webhook does not pay
    TCP + TLS + auth latency. Skipped when no database is configured.
    """
    if not settings.SUPABASE_DATABASE_URL:
        logger.warning("SUPABASE_DATABASE_URL not set, skipping pool warmup")
        return

    engine = get_engine(settings.SUPABASE_DATABASE_URL)
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


async def close_db() -> None:
    """
    Close database connections.

    Called on application shutdown to clean up resources.
    """
    while _engines:
        _, engine = _engines.popitem()
        await engine.dispose()
    logger.info("Database connections closed")
