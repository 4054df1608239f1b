"""
Concurrent cache preloading.

PreloadEngine runs a list of LoadDefinitions through a fixed pool of asyncio
workers. Each worker claims the next definition from a shared cursor, skips it
when the cache already holds a fresh value, and otherwise calls the producer
(retrying on failure) and writes the result back through the TTLCache.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Sequence

from .cache import TTLCache
from .config import EngineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadDefinition:
    """
    One cache entry to populate.

    Attributes:
        store: namespace to write into
        key: key within the namespace
        producer: zero-argument sync or async callable returning the value
        ttl: seconds until the written value expires (None = never)
    """

    store: str
    key: Hashable
    producer: Callable[[], Any]
    ttl: float | None = None


class _ClaimCursor:
    """Shared position in the definition list. Each index is handed out once."""

    def __init__(self, total: int):
        self._total = total
        self._next = 0
        self._lock = threading.Lock()

    def claim(self) -> int | None:
        with self._lock:
            if self._next >= self._total:
                return None
            idx = self._next
            self._next += 1
            return idx


class PreloadEngine:
    """
    Populate a TTLCache from producer functions with bounded parallelism.

    Example:
        engine = PreloadEngine(cache, EngineConfig(concurrency=3, max_retries=2))
        await engine.preload([
            LoadDefinition("users", "all", fetch_users, ttl=300),
            LoadDefinition("config", "flags", load_flags),
        ])
    """

    def __init__(self, cache: TTLCache, config: EngineConfig | None = None):
        self.cache = cache
        self.config = config if config is not None else EngineConfig()

    async def preload(
        self, defs: Sequence[LoadDefinition], config: EngineConfig | None = None
    ) -> None:
        """
        Attempt every definition. Returns once all of them are skipped,
        loaded, or out of retries. Individual failures are logged, never raised.
        """
        config = config if config is not None else self.config
        defs = list(defs)
        if not defs:
            return

        workers = min(config.concurrency, len(defs))
        if config.debug:
            logger.info(
                f"Starting preload of {len(defs)} items (concurrency={workers})"
            )
        start = time.time()

        cursor = _ClaimCursor(len(defs))
        await asyncio.gather(
            *(self._worker(defs, cursor, config) for _ in range(workers))
        )

        if config.debug:
            logger.info(f"Preload complete in {time.time() - start:.3f}s")

    def run(
        self, defs: Sequence[LoadDefinition], config: EngineConfig | None = None
    ) -> None:
        """Run preload() to completion on a fresh event loop (for sync callers)."""
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(self.preload(defs, config))
        finally:
            loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    async def _worker(
        self,
        defs: list[LoadDefinition],
        cursor: _ClaimCursor,
        config: EngineConfig,
    ) -> None:
        while True:
            idx = cursor.claim()
            if idx is None:
                return
            definition = defs[idx]

            if await self._is_fresh(definition, config):
                if config.debug:
                    logger.debug(
                        f"Cache hit for {definition.store}:{definition.key}, skipping fetch"
                    )
                continue

            await self._load(definition, config)

            if config.inter_item_delay > 0:
                await asyncio.sleep(config.inter_item_delay)

    async def _is_fresh(self, definition: LoadDefinition, config: EngineConfig) -> bool:
        # A failing lookup counts as a miss and does not use up retry budget
        try:
            cached = await asyncio.to_thread(
                self.cache.get, definition.store, definition.key
            )
        except Exception as e:
            if config.debug:
                logger.warning(
                    f"Preload cache check failed for {definition.store}:{definition.key}: {e!r}"
                )
            return False
        return cached is not None and not cached.expired

    async def _load(self, definition: LoadDefinition, config: EngineConfig) -> bool:
        """Produce and store one value. Returns False when retries ran out."""
        tries_left = config.max_retries
        while True:
            try:
                value = await self._produce(definition.producer)
                await asyncio.to_thread(
                    self.cache.set,
                    definition.store,
                    definition.key,
                    value,
                    definition.ttl,
                )
                if config.debug:
                    logger.debug(f"Inserted {definition.store}:{definition.key}")
                return True
            except Exception as e:
                if tries_left <= 0:
                    logger.error(
                        f"Preload failed for {definition.store}:{definition.key}: {e!r}",
                        exc_info=True,
                    )
                    return False
                if config.debug:
                    logger.warning(
                        f"Retrying {definition.store}:{definition.key} "
                        f"({tries_left} left): {e!r}"
                    )
                tries_left -= 1
                await asyncio.sleep(config.retry_backoff)

    @staticmethod
    async def _produce(producer: Callable[[], Any]) -> Any:
        if inspect.iscoroutinefunction(producer):
            return await producer()
        result = await asyncio.to_thread(producer)
        if inspect.isawaitable(result):
            result = await result
        return result
