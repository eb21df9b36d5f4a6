"""
Response cache for AI results.

`ResponseCache.get_or_compute` guarantees at most one in-flight compute per
key: the first caller installs an in-flight marker and computes, concurrent
callers for the same key wait on that marker and share the result. A failed
compute is never stored; its waiters see the same error and the next caller
starts fresh. Expired entries are evicted lazily when read.

Backing stores only need get / set-with-expiry / delete. Values must be
JSON-serializable so the Redis store can hold them.
"""

import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis

from ..errors import CacheMiss, UpstreamError


logger = logging.getLogger(__name__)


def make_cache_key(namespace: str, params: Dict[str, Any]) -> str:
    """Deterministic key: namespace plus SHA-256 of the canonical JSON of params."""
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {"value": self.value, "created_at": self.created_at, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "CacheEntry":
        return cls(
            key=key,
            value=data["value"],
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )


# ============================================================
# Stores
# ============================================================

class CacheStore(ABC):
    """Minimal key-value contract the cache needs."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Entry for `key`, or None."""

    @abstractmethod
    def set(self, entry: CacheEntry, ttl: int):
        """Store `entry`, letting the backend expire it after `ttl` seconds."""

    @abstractmethod
    def delete(self, key: str):
        """Remove `key` if present."""


class MemoryCacheStore(CacheStore):
    """Process-local store. Expiry is left to ResponseCache."""

    def __init__(self):
        self._data: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._data.get(key)

    def set(self, entry: CacheEntry, ttl: int):
        with self._lock:
            self._data[entry.key] = entry

    def delete(self, key: str):
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisCacheStore(CacheStore):
    """Redis-backed store using SETEX so Redis also drops stale keys on its own."""

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None, prefix: str = "surveyflow:"):
        if client is None:
            if not url:
                raise ValueError("RedisCacheStore needs a client or a url")
            client = redis.Redis.from_url(url, decode_responses=True)
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[CacheEntry]:
        raw = self._client.get(self._key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return CacheEntry.from_dict(key, json.loads(raw))

    def set(self, entry: CacheEntry, ttl: int):
        self._client.setex(self._key(entry.key), max(int(ttl), 1), json.dumps(entry.to_dict(), default=str))

    def delete(self, key: str):
        self._client.delete(self._key(key))


# ============================================================
# Cache
# ============================================================

class _InFlight:
    """Marker for one running compute; waiters block on `done`."""

    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class ResponseCache:
    """
    TTL cache with per-key compute coalescing.

    Store failures (Redis down, corrupt payload) are logged and treated as
    misses, so a broken cache only costs extra upstream calls.

    Callers waiting on another thread's compute give up after `wait_timeout`
    seconds; None waits for as long as the compute takes.
    """

    DEFAULT_WAIT_TIMEOUT = 60.0

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        default_ttl: int = 86400,
        clock: Callable[[], float] = time.time,
        wait_timeout: Optional[float] = DEFAULT_WAIT_TIMEOUT,
    ):
        self.store = store or MemoryCacheStore()
        self.default_ttl = default_ttl
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._lock = threading.Lock()
        self._inflight: Dict[str, _InFlight] = {}
        self._stats = {"hits": 0, "misses": 0, "computes": 0, "coalesced": 0, "store_errors": 0}

    def _count(self, name: str):
        with self._lock:
            self._stats[name] += 1

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = self.store.get(key)
        except Exception as e:
            self._count("store_errors")
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry expired: %s", key)
            try:
                self.store.delete(key)
            except Exception as e:
                self._count("store_errors")
                logger.warning("Cache evict failed for %s: %s", key, e)
            return None
        return entry

    def get(self, key: str) -> Any:
        """
        Return the live value for `key`.

        Raises:
            CacheMiss: no entry, or the entry has expired
        """
        entry = self._read(key)
        if entry is None:
            self._count("misses")
            raise CacheMiss(key)
        self._count("hits")
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        entry = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
        try:
            self.store.set(entry, ttl)
        except Exception as e:
            self._count("store_errors")
            logger.warning("Cache write failed for %s: %s", key, e)

    def invalidate(self, key: str):
        try:
            self.store.delete(key)
        except Exception as e:
            self._count("store_errors")
            logger.warning("Cache delete failed for %s: %s", key, e)

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """
        Return the cached value for `key`, computing it at most once.

        Args:
            key: Cache key (see make_cache_key)
            compute: Zero-argument function producing the value
            ttl: Seconds to keep the value (default_ttl if None)

        Raises:
            Whatever `compute` raised, for the owner and for every waiter
            UpstreamError: a waiter gave up after wait_timeout
        """
        try:
            value = self.get(key)
            logger.debug("Cache hit: %s", key)
            return value
        except CacheMiss:
            pass

        with self._lock:
            flight = self._inflight.get(key)
            owner = flight is None
            if owner:
                flight = _InFlight()
                self._inflight[key] = flight

        if not owner:
            self._count("coalesced")
            if not flight.done.wait(self._wait_timeout):
                raise UpstreamError(f"Timed out waiting for in-flight compute of {key}", operation="cache")
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            # A previous owner may have finished between our miss and the marker
            entry = self._read(key)
            if entry is not None:
                flight.value = entry.value
                return entry.value

            self._count("computes")
            try:
                value = compute()
            except BaseException as e:
                flight.error = e
                raise
            self.set(key, value, ttl)
            flight.value = value
            return value
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            flight.done.set()
