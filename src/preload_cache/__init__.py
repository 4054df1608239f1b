"""
TTL-aware key/value cache with a concurrent preload engine.

Expose storage backends, the TTL cache, the preload engine and scheduler
utilities under `preload_cache`.
"""

from .config import StoreConfig, EngineConfig
from .exceptions import (
    CacheError,
    UninitializedStoreError,
    UnknownNamespaceError,
    StoreWriteError,
)
from .storage import (
    Record,
    KeyValueStore,
    InMemStore,
    SQLiteStore,
    RedisStore,
    validate_store,
)
from .cache import CacheResult, TTLCache
from .engine import LoadDefinition, PreloadEngine
from .scheduler import PreloadScheduler
from .manager import CacheManager, create_cache

__all__ = [
    "StoreConfig",
    "EngineConfig",
    "CacheError",
    "UninitializedStoreError",
    "UnknownNamespaceError",
    "StoreWriteError",
    "Record",
    "KeyValueStore",
    "InMemStore",
    "SQLiteStore",
    "RedisStore",
    "validate_store",
    "CacheResult",
    "TTLCache",
    "LoadDefinition",
    "PreloadEngine",
    "PreloadScheduler",
    "CacheManager",
    "create_cache",
]
