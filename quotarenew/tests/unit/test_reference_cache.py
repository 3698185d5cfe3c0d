from __future__ import annotations

import pytest

from quotarenew.services import reference_cache
from quotarenew.services.telemetry import get_counters


def test_get_many_splits_hits_and_misses() -> None:
    reference_cache.put_many(reference_cache.KIND_PLANS, {"P1": "plan-1"}, now=100.0)
    hits, misses = reference_cache.get_many(reference_cache.KIND_PLANS, ["P1", "P2"], now=101.0)
    assert hits == {"P1": "plan-1"}
    assert misses == ["P2"]
    counters = get_counters()
    assert counters["reference_cache_hits_total.plans"] == 1
    assert counters["reference_cache_misses_total.plans"] == 1


def test_entries_expire_per_kind_ttl() -> None:
    reference_cache.put_many(reference_cache.KIND_USERS, {"alice": "u"}, now=0.0)
    reference_cache.put_many(reference_cache.KIND_QOS_PROFILES, {1: "q"}, now=0.0)
    # Users live 30 minutes, QoS profiles 12 hours.
    hits, misses = reference_cache.get_many(reference_cache.KIND_USERS, ["alice"], now=1801.0)
    assert hits == {}
    assert misses == ["alice"]
    hits, _ = reference_cache.get_many(reference_cache.KIND_QOS_PROFILES, [1], now=6 * 3600.0)
    assert hits == {1: "q"}
    _, misses = reference_cache.get_many(reference_cache.KIND_QOS_PROFILES, [1], now=12 * 3600.0 + 1)
    assert misses == [1]


def test_invalidate_single_key_and_kind() -> None:
    reference_cache.put_many(reference_cache.KIND_BUCKETS, {"A": 1, "B": 2}, now=0.0)
    reference_cache.invalidate(reference_cache.KIND_BUCKETS, "A")
    hits, misses = reference_cache.get_many(reference_cache.KIND_BUCKETS, ["A", "B"], now=1.0)
    assert hits == {"B": 2}
    assert misses == ["A"]
    reference_cache.invalidate(reference_cache.KIND_BUCKETS)
    hits, _ = reference_cache.get_many(reference_cache.KIND_BUCKETS, ["B"], now=1.0)
    assert hits == {}


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        reference_cache.get_many("service_instances", [1])
