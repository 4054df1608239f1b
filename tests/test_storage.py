"""
Unit tests for the key/value storage backends.
"""

import asyncio
import threading

import pytest

from preload_cache import (
    InMemStore,
    LoadDefinition,
    PreloadEngine,
    Record,
    SQLiteStore,
    StoreConfig,
    StoreWriteError,
    TTLCache,
    UninitializedStoreError,
    UnknownNamespaceError,
    validate_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, store_config):
    """Each local backend, opened."""
    if request.param == "memory":
        backend = InMemStore(store_config)
    else:
        backend = SQLiteStore(store_config)
    backend.open()
    yield backend
    backend.close()


class TestStoreContract:
    """Behaviour every backend shares."""

    def test_put_get(self, any_store):
        any_store.put("users", Record("u1", {"name": "John"}))
        record = any_store.get("users", "u1")
        assert record == Record("u1", {"name": "John"}, None)

    def test_get_absent(self, any_store):
        assert any_store.get("users", "missing") is None

    def test_put_overwrites(self, any_store):
        any_store.put("users", Record("u1", "old"))
        any_store.put("users", Record("u1", "new", expires_at=123.0))
        assert any_store.get("users", "u1") == Record("u1", "new", 123.0)
        assert len(any_store.get_all("users")) == 1

    def test_namespaces_are_isolated(self, any_store):
        any_store.put("users", Record("k", "user"))
        any_store.put("products", Record("k", "product"))
        assert any_store.get("users", "k").value == "user"
        assert any_store.get("products", "k").value == "product"

    def test_get_all(self, any_store):
        for i in range(3):
            any_store.put("products", Record(f"p{i}", i))
        values = sorted(r.value for r in any_store.get_all("products"))
        assert values == [0, 1, 2]
        assert any_store.get_all("config") == []

    def test_delete(self, any_store):
        any_store.put("users", Record("u1", 1))
        any_store.delete("users", "u1")
        assert any_store.get("users", "u1") is None

    def test_delete_absent_is_noop(self, any_store):
        any_store.delete("users", "never-there")

    def test_unknown_namespace(self, any_store):
        with pytest.raises(UnknownNamespaceError):
            any_store.get("orders", "x")
        with pytest.raises(UnknownNamespaceError):
            any_store.put("orders", Record("x", 1))

    def test_open_is_idempotent(self, any_store):
        any_store.put("users", Record("u1", 1))
        assert any_store.open() is any_store
        assert any_store.get("users", "u1").value == 1

    def test_keys_of_different_types_stay_distinct(self, any_store):
        any_store.put("users", Record(1, "int"))
        any_store.put("users", Record("1", "str"))
        any_store.put("users", Record(b"1", "bytes"))
        assert any_store.get("users", 1) == Record(1, "int")
        assert any_store.get("users", "1") == Record("1", "str")
        assert any_store.get("users", b"1") == Record(b"1", "bytes")
        assert len(any_store.get_all("users")) == 3

    def test_tuple_keys(self, any_store):
        any_store.put("products", Record(("sku", 7), {"qty": 3}))
        assert any_store.get("products", ("sku", 7)) == Record(("sku", 7), {"qty": 3})
        assert any_store.get("products", ("sku", 8)) is None
        any_store.delete("products", ("sku", 7))
        assert any_store.get_all("products") == []

    def test_protocol(self, any_store):
        assert validate_store(any_store)
        assert any_store.name == "test_db"
        assert any_store.is_open


class TestUninitialized:
    """Operations before open() fail."""

    @pytest.mark.parametrize("backend_cls", [InMemStore, SQLiteStore])
    def test_before_open(self, backend_cls, store_config):
        backend = backend_cls(store_config)
        with pytest.raises(UninitializedStoreError):
            backend.get("users", "u1")
        with pytest.raises(UninitializedStoreError):
            backend.get_all("users")
        with pytest.raises(UninitializedStoreError):
            backend.put("users", Record("u1", 1))
        with pytest.raises(UninitializedStoreError):
            backend.delete("users", "u1")

    def test_after_close(self, store_config):
        backend = InMemStore(store_config).open()
        backend.close()
        with pytest.raises(UninitializedStoreError):
            backend.get("users", "u1")


class TestInMemStore:
    def test_isolated_from_caller_mutation(self, store):
        value = {"tags": ["a"]}
        store.put("users", Record("u1", value))
        value["tags"].append("b")
        fetched = store.get("users", "u1")
        fetched.value["tags"].append("c")
        assert store.get("users", "u1").value == {"tags": ["a"]}

    def test_concurrent_puts(self, store):
        def writer(start):
            for i in range(start, start + 100):
                store.put("users", Record(i, i))

        threads = [threading.Thread(target=writer, args=(n * 100,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.get_all("users")) == 400

    def test_clear(self, store):
        store.put("users", Record("u1", 1))
        store.clear()
        assert store.get_all("users") == []


class TestSQLiteStore:
    def test_persists_across_connections(self, tmp_path, store_config):
        path = str(tmp_path / "cache.db")
        first = SQLiteStore(store_config, path=path).open()
        first.put("users", Record("u1", {"name": "John"}, expires_at=99.5))
        first.close()

        second = SQLiteStore(store_config, path=path).open()
        assert second.get("users", "u1") == Record("u1", {"name": "John"}, 99.5)
        second.close()

    def test_schema_upgrade_keeps_data(self, tmp_path):
        path = str(tmp_path / "cache.db")
        v1 = SQLiteStore(StoreConfig("db", namespaces=("a",)), path=path).open()
        v1.put("a", Record("k", 1))
        v1.close()

        v2 = SQLiteStore(
            StoreConfig("db", schema_version=2, namespaces=("a", "b")), path=path
        ).open()
        (version,) = v2._conn.execute("PRAGMA user_version").fetchone()
        assert version == 2
        assert v2.get("a", "k").value == 1
        v2.put("b", Record("k", 2))
        assert v2.get("b", "k").value == 2
        v2.close()

    def test_unpicklable_value_raises_write_error(self, store_config):
        backend = SQLiteStore(store_config).open()
        with pytest.raises(StoreWriteError):
            backend.put("users", Record("u1", lambda: None))
        backend.close()

    def test_tuple_key_preload_write(self, store_config):
        cache = TTLCache(SQLiteStore(store_config).open())
        defs = [LoadDefinition("products", ("sku", i), lambda i=i: i) for i in range(3)]
        asyncio.run(PreloadEngine(cache).preload(defs))
        assert cache.get("products", ("sku", 2)).value == 2
        assert len(cache.get_all("products")) == 3

    def test_integer_and_string_keys(self, store_config):
        backend = SQLiteStore(store_config).open()
        backend.put("users", Record(1, "int"))
        backend.put("users", Record("1", "str"))
        assert backend.get("users", 1).value == "int"
        assert backend.get("users", "1").value == "str"
        backend.close()


class TestStoreConfig:
    def test_requires_namespace_id(self):
        with pytest.raises(ValueError):
            StoreConfig("")

    def test_rejects_bad_schema_version(self):
        with pytest.raises(ValueError):
            StoreConfig("db", schema_version=0)

    def test_namespaces_become_tuple(self):
        assert StoreConfig("db", namespaces=["a", "b"]).namespaces == ("a", "b")
