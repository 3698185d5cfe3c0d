"""Subscriber session documents mirrored in Redis.

The accounting services read ``user:<username>`` to decide which balances a
live session may consume. This module only appends freshly provisioned
balances and prunes stale ones; it never treats a missing key as an error.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
from typing import Any

from pydantic import ValidationError

from quotarenew.core.config import get_settings
from quotarenew.core.errors import (
    CacheOperationError,
    CacheSerializationError,
    CacheTimeoutError,
)
from quotarenew.domain.session import UserSessionData
from quotarenew.services.resilience import (
    CacheTimeoutException,
    cache_read_policy,
    cache_write_policy,
    get_redis,
    retry_async,
)


logger = logging.getLogger(__name__)


def user_key(username: str) -> str:
    return f"{get_settings().session_cache_key_prefix}{username}"


def group_key(username: str) -> str:
    return f"{get_settings().group_cache_key_prefix}{username}"


async def _client() -> Any:
    redis = await get_redis()
    if redis is None:
        raise CacheOperationError("Session cache is unavailable")
    return redis


async def get_user_data(username: str) -> UserSessionData | None:
    redis = await _client()
    key = user_key(username)
    try:
        raw = await retry_async(lambda: redis.get(key), policy=cache_read_policy())
    except CacheTimeoutException as exc:
        raise CacheTimeoutError(f"Timeout getting user data for {username}") from exc
    except Exception as exc:  # noqa: BLE001 - normalized into the cache error taxonomy
        raise CacheOperationError(f"Failed to get user data for {username}") from exc
    if raw is None:
        logger.debug("session_cache_miss username=%s", username)
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    try:
        return UserSessionData.model_validate_json(raw)
    except (ValidationError, ValueError) as exc:
        raise CacheSerializationError(f"Failed to deserialize user data for {username}") from exc


def remove_expired_balances(data: UserSessionData, *, now: datetime) -> int:
    # Drop balances whose bucket expired more than one day ago.
    if not data.balance:
        return 0
    cutoff = now - timedelta(days=1)
    kept = [
        balance
        for balance in data.balance
        if balance.bucket_expiry_date is None or balance.bucket_expiry_date > cutoff
    ]
    removed = len(data.balance) - len(kept)
    if removed:
        data.balance = kept
        logger.info(
            "session_cache_pruned username=%s removed=%s remaining=%s",
            data.user_name,
            removed,
            len(kept),
        )
    return removed


def _should_update_group(data: UserSessionData) -> bool:
    return data.group_id is not None and data.group_id.lower() != "1"


async def update_user_data(username: str, data: UserSessionData, *, now: datetime) -> None:
    # Rewrite the whole document; the group summary key follows when the user belongs to a group.
    redis = await _client()
    remove_expired_balances(data, now=now)
    try:
        payload = data.model_dump_json(by_alias=True)
    except (ValidationError, ValueError, TypeError) as exc:
        raise CacheSerializationError(f"Failed to serialize user data for {username}") from exc

    writes = [lambda: redis.set(user_key(username), payload)]
    if _should_update_group(data):
        group_value = f"{data.group_id},{data.concurrency},{data.user_status},{data.session_time_out}"
        writes.append(lambda: redis.set(group_key(username), group_value))

    policy = cache_write_policy()
    try:
        await asyncio.gather(*(retry_async(write, policy=policy) for write in writes))
    except CacheTimeoutException as exc:
        raise CacheTimeoutError(f"Timeout updating cache for {username}") from exc
    except Exception as exc:  # noqa: BLE001 - normalized into the cache error taxonomy
        raise CacheOperationError(f"Failed to update cache for {username}") from exc
    logger.debug("session_cache_updated username=%s balances=%s", username, len(data.balance))
