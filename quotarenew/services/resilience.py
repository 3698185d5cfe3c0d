from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from quotarenew.core.config import get_settings
from quotarenew.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


# redis-py transport errors derive from RedisError, not the builtin exceptions.
TransientException = (
    TimeoutError,
    OSError,
    ConnectionError,
    RedisConnectionError,
    RedisTimeoutError,
)
CacheTimeoutException = (TimeoutError, RedisTimeoutError)


@dataclass
class _LoopClient:
    client: Redis
    loop: asyncio.AbstractEventLoop


_session_client: _LoopClient | None = None


def _build_client() -> Redis:
    settings = get_settings()
    # Socket-level bounds sit just under the per-call read timeout enforced by retry_async.
    socket_timeout_s = settings.session_cache_read_timeout_ms / 1000.0
    return Redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=socket_timeout_s,
        socket_connect_timeout=socket_timeout_s,
    )


async def get_redis() -> Redis | None:
    """Return the session cache client bound to the running loop, or None when it cannot be built."""
    global _session_client
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    if _session_client is not None and _session_client.loop is loop:
        return _session_client.client
    try:
        client = _build_client()
    except ValueError as exc:
        logger.warning("session_cache_client_unavailable reason=%s", exc)
        return None
    # A client from a previous loop cannot be reused; tests and scripts each run their own loop.
    _session_client = _LoopClient(client=client, loop=loop)
    return client


@dataclass(frozen=True)
class RetryPolicy:
    timeout_ms: int
    max_attempts: int
    backoff_ms: int


def cache_read_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        timeout_ms=settings.session_cache_read_timeout_ms,
        max_attempts=settings.session_cache_retry_max_attempts,
        backoff_ms=settings.session_cache_retry_backoff_ms,
    )


def cache_write_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        timeout_ms=settings.session_cache_write_timeout_ms,
        max_attempts=settings.session_cache_retry_max_attempts,
        backoff_ms=settings.session_cache_retry_backoff_ms,
    )


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransientException)


def _backoff_s(policy: RetryPolicy, attempt: int) -> float:
    return (policy.backoff_ms / 1000.0) * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy,
    retryable: Callable[[BaseException], bool] = is_transient,
) -> Any:
    """Run one cache call under ``policy``.

    Each attempt is bounded by ``policy.timeout_ms``. Redis and socket
    transport failures are retried up to ``policy.max_attempts``; anything
    else propagates from the first attempt.
    """
    attempts = max(policy.max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout_ms / 1000.0)
        except Exception as exc:  # noqa: BLE001 - caller classifies the final failure
            if attempt == attempts or not retryable(exc):
                raise
            increment_counter("session_cache_retries_total")
            logger.debug(
                "session_cache_retry attempt=%s error_type=%s", attempt, type(exc).__name__
            )
            await asyncio.sleep(_backoff_s(policy, attempt))
