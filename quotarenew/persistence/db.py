from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import QueuePool

from quotarenew.core.config import get_settings


settings = get_settings()
_engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
# Bounded asyncpg pools; sqlite (tests) keeps the driver defaults.
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
    _engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
    _engine_kwargs["pool_timeout"] = 30
    _engine_kwargs["pool_recycle"] = 1800
    if settings.db_statement_timeout_ms > 0:
        _engine_kwargs["connect_args"] = {
            "server_settings": {"statement_timeout": str(int(settings.db_statement_timeout_ms))}
        }
engine = create_async_engine(settings.database_url, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def unit_of_work() -> AsyncIterator[AsyncSession]:
    # One session and one transaction; commits on success, rolls back on any exception.
    async with SessionLocal() as session:
        async with session.begin():
            yield session


def pool_stats() -> dict[str, Any]:
    """Connection pool snapshot for run summaries; sizes are only reported for queue pools."""
    pool = engine.sync_engine.pool
    stats: dict[str, Any] = {"dialect": engine.dialect.name, "pool": type(pool).__name__}
    # AsyncAdaptedQueuePool (asyncpg, aiosqlite file databases) subclasses QueuePool.
    if isinstance(pool, QueuePool):
        stats["size"] = pool.size()
        stats["checked_out"] = pool.checkedout()
        stats["overflow"] = pool.overflow()
    return stats
