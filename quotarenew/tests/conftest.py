from __future__ import annotations

import os
from pathlib import Path
import tempfile
from typing import Any

# Point the engine at a throwaway SQLite file before any quotarenew module builds it.
_DB_DIR = Path(tempfile.mkdtemp(prefix="quotarenew-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR / 'quotarenew.db'}"
os.environ.setdefault("SESSION_CACHE_RETRY_BACKOFF_MS", "1")

import pytest

from quotarenew.domain.models import Base
from quotarenew.persistence.db import engine
from quotarenew.services import reference_cache, session_cache
from quotarenew.services.telemetry import reset_counters


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls the session cache makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.fail_get: Exception | None = None
        self.fail_set: Exception | None = None
        self.get_calls = 0
        self.set_calls = 0

    async def get(self, key: str) -> Any:
        self.get_calls += 1
        if self.fail_get is not None:
            raise self.fail_get
        return self.store.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.set_calls += 1
        if self.fail_set is not None:
            raise self.fail_set
        self.store[key] = value
        return True


@pytest.fixture(autouse=True)
async def reset_schema_between_tests() -> None:
    # Fresh tables per test; dispose so no pooled connection outlives the test loop.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    reference_cache.reset()
    reset_counters()
    yield
    reference_cache.reset()
    reset_counters()


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch, no_redis: None) -> FakeRedis:
    redis = FakeRedis()

    async def _get_redis() -> FakeRedis:
        return redis

    monkeypatch.setattr(session_cache, "get_redis", _get_redis)
    return redis


@pytest.fixture(autouse=True)
def no_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests never reach a real Redis; fake_redis replaces this per test.
    async def _get_redis() -> None:
        return None

    monkeypatch.setattr(session_cache, "get_redis", _get_redis)
