from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from quotarenew.services.resilience import RetryPolicy, is_transient, retry_async
from quotarenew.services.telemetry import get_counters


@pytest.mark.asyncio
async def test_retry_async_retries_transient_errors() -> None:
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] == 1:
            raise ConnectionError("reset")
        return "ok"

    result = await retry_async(flaky, policy=RetryPolicy(timeout_ms=500, max_attempts=2, backoff_ms=1))
    assert result == "ok"
    assert calls["count"] == 2
    assert get_counters()["session_cache_retries_total"] == 1


@pytest.mark.asyncio
async def test_retry_async_gives_up_after_max_attempts() -> None:
    calls = {"count": 0}

    async def broken() -> None:
        calls["count"] += 1
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await retry_async(broken, policy=RetryPolicy(timeout_ms=500, max_attempts=2, backoff_ms=1))
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_non_transient_errors() -> None:
    calls = {"count": 0}

    async def invalid() -> None:
        calls["count"] += 1
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await retry_async(invalid, policy=RetryPolicy(timeout_ms=500, max_attempts=3, backoff_ms=1))
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_retry_async_times_out_slow_calls() -> None:
    async def slow() -> None:
        await asyncio.sleep(1)

    with pytest.raises(TimeoutError):
        await retry_async(slow, policy=RetryPolicy(timeout_ms=10, max_attempts=1, backoff_ms=1))


@pytest.mark.asyncio
async def test_retry_async_retries_redis_transport_errors() -> None:
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] == 1:
            raise RedisConnectionError("Connection closed by server.")
        if calls["count"] == 2:
            raise RedisTimeoutError("Timeout reading from socket")
        return "ok"

    result = await retry_async(flaky, policy=RetryPolicy(timeout_ms=500, max_attempts=3, backoff_ms=1))
    assert result == "ok"
    assert calls["count"] == 3


def test_redis_errors_are_transient_but_response_errors_are_not() -> None:
    assert is_transient(RedisConnectionError("down"))
    assert is_transient(RedisTimeoutError("slow"))
    assert not is_transient(ResponseError("WRONGTYPE Operation against a key"))
