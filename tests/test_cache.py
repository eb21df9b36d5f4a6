"""
Tests for the response cache: at-most-once compute, coalescing, TTL and stores.
"""

import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow.ai.cache import (
    CacheEntry,
    MemoryCacheStore,
    RedisCacheStore,
    ResponseCache,
    make_cache_key,
)
from surveyflow.errors import CacheMiss, UpstreamError


class FakeClock:

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeRedis:
    """Just enough of redis.Redis for the store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)


class BrokenStore(MemoryCacheStore):

    def get(self, key):
        raise ConnectionError("redis down")

    def set(self, entry, ttl):
        raise ConnectionError("redis down")


def test_make_cache_key_is_order_independent():
    a = make_cache_key("ns", {"b": 2, "a": [1, 2]})
    b = make_cache_key("ns", {"a": [1, 2], "b": 2})
    assert a == b
    assert a.startswith("ns:")
    assert a != make_cache_key("other", {"a": [1, 2], "b": 2})


def test_compute_runs_at_most_once_within_ttl():
    cache = ResponseCache(default_ttl=60, clock=FakeClock())
    calls = []

    def compute():
        calls.append(1)
        return {"value": 42}

    assert cache.get_or_compute("k", compute) == {"value": 42}
    assert cache.get_or_compute("k", compute) == {"value": 42}
    assert len(calls) == 1
    assert cache.stats["computes"] == 1
    assert cache.stats["hits"] == 1


def test_expired_entries_are_evicted_on_access():
    clock = FakeClock()
    store = MemoryCacheStore()
    cache = ResponseCache(store, default_ttl=60, clock=clock)
    cache.set("k", "old")

    clock.now += 61
    with pytest.raises(CacheMiss):
        cache.get("k")
    assert len(store) == 0
    assert cache.get_or_compute("k", lambda: "new") == "new"


def test_failure_is_not_cached():
    cache = ResponseCache(clock=FakeClock())

    def failing():
        raise UpstreamError("nope")

    with pytest.raises(UpstreamError):
        cache.get_or_compute("k", failing)
    with pytest.raises(CacheMiss):
        cache.get("k")
    assert cache.get_or_compute("k", lambda: "recovered") == "recovered"


def test_concurrent_callers_share_one_compute():
    cache = ResponseCache()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_compute():
        calls.append(1)
        started.set()
        release.wait(5)
        return "shared"

    results = []

    def worker():
        results.append(cache.get_or_compute("k", slow_compute))

    owner = threading.Thread(target=worker)
    owner.start()
    assert started.wait(5)

    waiters = [threading.Thread(target=worker) for _ in range(4)]
    for t in waiters:
        t.start()
    # Give the waiters time to find the in-flight marker
    deadline = time.time() + 5
    while cache.stats["coalesced"] < 4 and time.time() < deadline:
        time.sleep(0.01)
    release.set()

    for t in [owner] + waiters:
        t.join(5)

    assert results == ["shared"] * 5
    assert len(calls) == 1


def test_waiters_see_the_owner_failure():
    cache = ResponseCache()
    started = threading.Event()
    release = threading.Event()
    errors = []

    def failing():
        started.set()
        release.wait(5)
        raise UpstreamError("provider down")

    def worker():
        try:
            cache.get_or_compute("k", failing)
        except UpstreamError as e:
            errors.append(str(e))

    owner = threading.Thread(target=worker)
    owner.start()
    assert started.wait(5)
    waiter = threading.Thread(target=worker)
    waiter.start()
    deadline = time.time() + 5
    while cache.stats["coalesced"] < 1 and time.time() < deadline:
        time.sleep(0.01)
    release.set()
    owner.join(5)
    waiter.join(5)

    assert errors == ["provider down", "provider down"]


def test_waiter_gives_up_after_wait_timeout():
    cache = ResponseCache(wait_timeout=0.05)
    started = threading.Event()
    release = threading.Event()

    def slow():
        started.set()
        release.wait(5)
        return "late"

    owner = threading.Thread(target=lambda: cache.get_or_compute("k", slow))
    owner.start()
    assert started.wait(5)
    try:
        with pytest.raises(UpstreamError):
            cache.get_or_compute("k", slow)
    finally:
        release.set()
        owner.join(5)


def test_waiters_are_bounded_by_default():
    cache = ResponseCache()
    assert cache._wait_timeout == ResponseCache.DEFAULT_WAIT_TIMEOUT
    assert 0 < ResponseCache.DEFAULT_WAIT_TIMEOUT < float("inf")


def test_store_errors_degrade_to_misses():
    cache = ResponseCache(BrokenStore())
    assert cache.get_or_compute("k", lambda: 1) == 1
    assert cache.get_or_compute("k", lambda: 2) == 2
    assert cache.stats["store_errors"] >= 2


def test_redis_store_round_trip():
    client = FakeRedis()
    store = RedisCacheStore(client=client, prefix="test:")
    cache = ResponseCache(store, default_ttl=300, clock=FakeClock())

    cache.get_or_compute("k", lambda: [{"id": "ai_q_1"}])

    assert client.ttls["test:k"] == 300
    entry = store.get("k")
    assert isinstance(entry, CacheEntry)
    assert entry.value == [{"id": "ai_q_1"}]
    assert cache.get("k") == [{"id": "ai_q_1"}]


def test_redis_store_needs_client_or_url():
    with pytest.raises(ValueError):
        RedisCacheStore()
