"""
TTL-aware cache layered over a KeyValueStore.

Writes stamp an absolute expiry; reads report soft expiry instead of hiding
stale data. Reads are best-effort (backend errors become misses), writes are
not (backend errors propagate to the caller).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, TypeVar

from .storage import KeyValueStore, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """A cached value and whether its TTL has elapsed."""

    value: T
    expired: bool = False

    @property
    def is_fresh(self) -> bool:
        return not self.expired


class TTLCache:
    """
    TTL cache over any KeyValueStore.

    Example:
        cache = TTLCache(InMemStore(StoreConfig("app", namespaces=("users",))).open())
        cache.set("users", "u1", {"name": "John"}, ttl=60)
        result = cache.get("users", "u1")
        if result is not None and not result.expired:
            ...
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        """
        Args:
            store: backend holding the records
            clock: returns the current Unix time, injectable for tests
            debug: log writes and invalidations
        """
        self.store = store
        self.clock = clock
        self.debug = debug

    def _wrap(self, record: Record, now: float) -> CacheResult:
        value = record.value
        if isinstance(value, list):
            value = list(value)
        return CacheResult(value=value, expired=record.is_expired(now))

    def get(self, store: str, key: Hashable) -> CacheResult | None:
        """Return the cached entry, None when absent or unreadable."""
        try:
            record = self.store.get(store, key)
        except Exception as e:
            logger.warning(f"Cache get failed for {store}:{key}: {e!r}")
            return None
        if record is None:
            return None
        return self._wrap(record, self.clock())

    def get_all(self, store: str) -> list[CacheResult]:
        """Return every entry in a namespace, empty when unreadable."""
        try:
            records = self.store.get_all(store)
        except Exception as e:
            logger.warning(f"Cache get_all failed for {store}: {e!r}")
            return []
        now = self.clock()
        return [self._wrap(record, now) for record in records]

    def set(self, store: str, key: Hashable, value: Any, ttl: float | None = None) -> bool:
        """Store value, expiring after ttl seconds (None or <= 0 = forever)."""
        expires_at = self.clock() + ttl if ttl and ttl > 0 else None
        self.store.put(store, Record(key=key, value=value, expires_at=expires_at))
        if self.debug:
            logger.debug(f"Cache set {store}:{key} (expires_at={expires_at})")
        return True

    def invalidate(self, store: str, key: Hashable) -> bool:
        """Delete a cached entry. Absent keys are not an error."""
        self.store.delete(store, key)
        if self.debug:
            logger.debug(f"Cache invalidated {store}:{key}")
        return True
