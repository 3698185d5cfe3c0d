from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
import time
from typing import Any

from quotarenew.services.telemetry import increment_counter


KIND_USERS = "users"
KIND_PLANS = "plans"
KIND_TEMPLATES = "templates"
KIND_BUCKETS = "buckets"
KIND_QOS_PROFILES = "qos_profiles"

# Seconds each reference entity stays cached in-process.
TTL_SECONDS: dict[str, int] = {
    KIND_USERS: 30 * 60,
    KIND_PLANS: 6 * 60 * 60,
    KIND_TEMPLATES: 6 * 60 * 60,
    KIND_BUCKETS: 6 * 60 * 60,
    KIND_QOS_PROFILES: 12 * 60 * 60,
}

_cache: dict[str, dict[Hashable, tuple[float, Any]]] = {}


def _now(now: float | None) -> float:
    return time.monotonic() if now is None else now


def _ttl(kind: str) -> int:
    try:
        return TTL_SECONDS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown reference cache kind: {kind}") from exc


def get_many(
    kind: str, keys: Iterable[Hashable], *, now: float | None = None
) -> tuple[dict[Hashable, Any], list[Hashable]]:
    """Split ``keys`` into cached values and keys that must be loaded from storage."""
    _ttl(kind)
    current = _now(now)
    entries = _cache.get(kind, {})
    hits: dict[Hashable, Any] = {}
    misses: list[Hashable] = []
    for key in keys:
        cached = entries.get(key)
        if cached and cached[0] > current:
            hits[key] = cached[1]
            continue
        if cached:
            entries.pop(key, None)
        misses.append(key)
    if hits:
        increment_counter(f"reference_cache_hits_total.{kind}", len(hits))
    if misses:
        increment_counter(f"reference_cache_misses_total.{kind}", len(misses))
    return hits, misses


def put_many(kind: str, mapping: Mapping[Hashable, Any], *, now: float | None = None) -> None:
    expires_at = _now(now) + _ttl(kind)
    entries = _cache.setdefault(kind, {})
    for key, value in mapping.items():
        entries[key] = (expires_at, value)


def invalidate(kind: str, key: Hashable | None = None) -> None:
    # Drop one entry, or the whole kind when no key is given.
    if key is None:
        _cache.pop(kind, None)
        return
    _cache.get(kind, {}).pop(key, None)


def reset() -> None:
    _cache.clear()
