"""
Single-object entry point bundling a store, its TTLCache and a PreloadEngine.
"""

from __future__ import annotations

import logging
from typing import Any, Hashable, Sequence

from .cache import CacheResult, TTLCache
from .config import EngineConfig, StoreConfig
from .engine import LoadDefinition, PreloadEngine
from .storage import InMemStore, KeyValueStore

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Cache facade.

    Example:
        cache = create_cache(StoreConfig("app", namespaces=("users",))).init()
        cache.run_preload([LoadDefinition("users", "u1", fetch_user, ttl=60)])
        cache.get("users", "u1")
    """

    def __init__(self, config: StoreConfig, store: KeyValueStore | None = None):
        self.config = config
        self.store = store if store is not None else InMemStore(config)
        self.cache = TTLCache(self.store, debug=config.debug_logging)
        self.engine = PreloadEngine(
            self.cache, EngineConfig(debug=config.debug_logging)
        )

    @property
    def name(self) -> str:
        return self.config.namespace_id

    def init(self) -> CacheManager:
        """Open the store. Safe to call repeatedly."""
        self.store.open()
        if self.config.debug_logging:
            logger.debug(f"Cache ready: {self.name}")
        return self

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> CacheManager:
        return self.init()

    def __exit__(self, *exc) -> None:
        self.close()

    def get(self, store: str, key: Hashable) -> CacheResult | None:
        return self.cache.get(store, key)

    def get_all(self, store: str) -> list[CacheResult]:
        return self.cache.get_all(store)

    def set(self, store: str, key: Hashable, value: Any, ttl: float | None = None) -> bool:
        return self.cache.set(store, key, value, ttl=ttl)

    def invalidate(self, store: str, key: Hashable) -> bool:
        return self.cache.invalidate(store, key)

    async def preload(
        self, defs: Sequence[LoadDefinition], config: EngineConfig | None = None
    ) -> None:
        await self.engine.preload(defs, config)

    def run_preload(
        self, defs: Sequence[LoadDefinition], config: EngineConfig | None = None
    ) -> None:
        self.engine.run(defs, config)


def create_cache(config: StoreConfig, store: KeyValueStore | None = None) -> CacheManager:
    """Build a CacheManager; the store defaults to an InMemStore."""
    return CacheManager(config, store)
