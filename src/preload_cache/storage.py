"""
Key/value storage backends.

Provides InMemStore (in-memory), SQLiteStore (durable, file-backed), RedisStore,
and the KeyValueStore protocol. Every backend keeps records per namespace and
implements KeyValueStore, so TTLCache can sit on top of any of them.
"""

from __future__ import annotations

import copy
import logging
import pickle
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Any, Hashable, Protocol

from .config import StoreConfig
from .exceptions import StoreWriteError, UninitializedStoreError, UnknownNamespaceError

try:
    import redis
except ImportError:
    redis = None  # type: ignore

logger = logging.getLogger(__name__)


# ============================================================================
# Record - Stored data structure
# ============================================================================


@dataclass
class Record:
    """A stored value with its expiry metadata."""

    key: Hashable
    value: Any
    expires_at: float | None = None  # Unix timestamp, None = never expires

    def is_expired(self, now: float | None = None) -> bool:
        """Check if the record's TTL has elapsed."""
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return self.expires_at <= now


# ============================================================================
# Storage Protocol - Common interface for all backends
# ============================================================================


class KeyValueStore(Protocol):
    """
    Protocol for namespaced key/value backends.

    The namespace set is fixed at construction time. Every operation other
    than open() fails with UninitializedStoreError until the store is opened.
    """

    name: str

    def open(self) -> KeyValueStore:
        """Open the backend. Calling it again is a no-op."""
        ...

    def close(self) -> None:
        """Release the backend connection."""
        ...

    def get(self, namespace: str, key: Hashable) -> Record | None:
        """Get one record, None if absent."""
        ...

    def get_all(self, namespace: str) -> list[Record]:
        """Get every record in a namespace."""
        ...

    def put(self, namespace: str, record: Record) -> None:
        """Insert or replace the record stored under record.key."""
        ...

    def delete(self, namespace: str, key: Hashable) -> None:
        """Delete a record. Absent keys are ignored."""
        ...


def validate_store(store: Any) -> bool:
    """
    Validate that an object implements the KeyValueStore protocol.
    Useful for debugging custom backends.

    Returns:
        True if valid, False otherwise
    """
    required_methods = ["open", "close", "get", "get_all", "put", "delete"]
    return all(
        hasattr(store, method) and callable(getattr(store, method))
        for method in required_methods
    )


_KEY_PROTOCOL = 4


def _encode_key(key: Hashable) -> bytes:
    """
    Serialize a key for backends that address records by bytes.

    The encoding carries the key's type, so 1, "1" and b"1" stay distinct.
    Keys must pickle deterministically (scalars and tuples of scalars do).
    """
    return pickle.dumps(key, protocol=_KEY_PROTOCOL)


class _BaseStore:
    """Shared namespace and open-state bookkeeping."""

    def __init__(self, config: StoreConfig):
        self.config = config
        self._opened = False
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self.config.namespace_id

    @property
    def is_open(self) -> bool:
        return self._opened

    def _check(self, namespace: str) -> None:
        if not self._opened:
            raise UninitializedStoreError(self.name)
        if namespace not in self.config.namespaces:
            raise UnknownNamespaceError(namespace)


# ============================================================================
# InMemStore - In-memory storage
# ============================================================================


class InMemStore(_BaseStore):
    """
    Thread-safe in-memory store.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, config: StoreConfig):
        super().__init__(config)
        self._data: dict[str, dict[Hashable, Record]] = {}

    def open(self) -> InMemStore:
        with self._lock:
            for namespace in self.config.namespaces:
                self._data.setdefault(namespace, {})
            self._opened = True
        return self

    def close(self) -> None:
        with self._lock:
            self._opened = False

    def get(self, namespace: str, key: Hashable) -> Record | None:
        with self._lock:
            self._check(namespace)
            record = self._data[namespace].get(key)
            return copy.deepcopy(record)

    def get_all(self, namespace: str) -> list[Record]:
        with self._lock:
            self._check(namespace)
            return [copy.deepcopy(r) for r in self._data[namespace].values()]

    def put(self, namespace: str, record: Record) -> None:
        with self._lock:
            self._check(namespace)
            self._data[namespace][record.key] = copy.deepcopy(record)

    def delete(self, namespace: str, key: Hashable) -> None:
        with self._lock:
            self._check(namespace)
            self._data[namespace].pop(key, None)

    def clear(self) -> None:
        """Drop every record in every namespace."""
        with self._lock:
            for records in self._data.values():
                records.clear()


# ============================================================================
# SQLiteStore - Durable file-backed storage
# ============================================================================


class SQLiteStore(_BaseStore):
    """
    SQLite-backed store. Keys and values are pickled into a single records
    table keyed by (namespace, key). Each operation runs in its own transaction.

    Example:
        config = StoreConfig("app", namespaces=("users",))
        store = SQLiteStore(config, path="cache.db").open()
        store.put("users", Record("u1", {"name": "John"}))
    """

    def __init__(self, config: StoreConfig, path: str = ":memory:"):
        super().__init__(config)
        self.path = path
        self._conn: sqlite3.Connection | None = None

    def open(self) -> SQLiteStore:
        with self._lock:
            if self._opened:
                return self
            conn = sqlite3.connect(self.path, check_same_thread=False)
            try:
                self._upgrade(conn)
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn
            self._opened = True
            if self.config.debug_logging:
                logger.debug(f"SQLite store ready: {self.name} ({self.path})")
        return self

    def _upgrade(self, conn: sqlite3.Connection) -> None:
        """Create the schema when the stored version is behind the config."""
        (current,) = conn.execute("PRAGMA user_version").fetchone()
        if current >= self.config.schema_version:
            return
        with conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS records ("
                " namespace TEXT NOT NULL,"
                " key BLOB NOT NULL,"
                " value BLOB NOT NULL,"
                " expires_at REAL,"
                " PRIMARY KEY (namespace, key))"
            )
            conn.execute(f"PRAGMA user_version = {int(self.config.schema_version)}")
        logger.info(
            f"Upgraded {self.name} schema from v{current} to v{self.config.schema_version}"
        )

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            self._opened = False

    def _row_to_record(self, row: tuple) -> Record:
        key, data, expires_at = row
        return Record(key=pickle.loads(key), value=pickle.loads(data), expires_at=expires_at)

    def get(self, namespace: str, key: Hashable) -> Record | None:
        with self._lock:
            self._check(namespace)
            row = self._conn.execute(
                "SELECT key, value, expires_at FROM records WHERE namespace = ? AND key = ?",
                (namespace, _encode_key(key)),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def get_all(self, namespace: str) -> list[Record]:
        with self._lock:
            self._check(namespace)
            rows = self._conn.execute(
                "SELECT key, value, expires_at FROM records WHERE namespace = ? ORDER BY rowid",
                (namespace,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def put(self, namespace: str, record: Record) -> None:
        with self._lock:
            self._check(namespace)
            try:
                data = pickle.dumps(record.value)
                with self._conn:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO records (namespace, key, value, expires_at)"
                        " VALUES (?, ?, ?, ?)",
                        (namespace, _encode_key(record.key), data, record.expires_at),
                    )
            except Exception as e:
                raise StoreWriteError(f"SQLite put failed: {e}") from e

    def delete(self, namespace: str, key: Hashable) -> None:
        with self._lock:
            self._check(namespace)
            try:
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM records WHERE namespace = ? AND key = ?",
                        (namespace, _encode_key(key)),
                    )
            except Exception as e:
                raise StoreWriteError(f"SQLite delete failed: {e}") from e


# ============================================================================
# RedisStore - Redis-backed storage
# ============================================================================


class RedisStore(_BaseStore):
    """
    Redis-backed store. Each namespace is one hash whose fields are the
    pickled keys; records are pickled.

    Example:
        import redis
        client = redis.Redis(host='localhost', port=6379)
        store = RedisStore(StoreConfig("app", namespaces=("users",)), client)
        store.open()
    """

    def __init__(self, config: StoreConfig, redis_client: Any, prefix: str = ""):
        """
        Initialize Redis store.

        Args:
            config: store config (namespace_id becomes part of every hash name)
            redis_client: Redis client instance
            prefix: Key prefix for namespacing
        """
        if redis is None:
            raise ImportError("redis package required. Install: pip install redis")
        super().__init__(config)
        self.client = redis_client
        self.prefix = prefix

    def _hash_name(self, namespace: str) -> str:
        return f"{self.prefix}{self.name}:{namespace}"

    def open(self) -> RedisStore:
        with self._lock:
            if not self._opened:
                self.client.ping()
                self._opened = True
        return self

    def close(self) -> None:
        with self._lock:
            self._opened = False

    def get(self, namespace: str, key: Hashable) -> Record | None:
        self._check(namespace)
        data = self.client.hget(self._hash_name(namespace), _encode_key(key))
        if data is None:
            return None
        return pickle.loads(data)

    def get_all(self, namespace: str) -> list[Record]:
        self._check(namespace)
        rows = self.client.hgetall(self._hash_name(namespace))
        return [pickle.loads(data) for data in rows.values()]

    def put(self, namespace: str, record: Record) -> None:
        self._check(namespace)
        try:
            data = pickle.dumps(record)
            self.client.hset(self._hash_name(namespace), _encode_key(record.key), data)
        except Exception as e:
            raise StoreWriteError(f"Redis put failed: {e}") from e

    def delete(self, namespace: str, key: Hashable) -> None:
        self._check(namespace)
        try:
            self.client.hdel(self._hash_name(namespace), _encode_key(key))
        except Exception as e:
            raise StoreWriteError(f"Redis delete failed: {e}") from e
