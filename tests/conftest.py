import pytest

from preload_cache import InMemStore, StoreConfig, TTLCache, PreloadScheduler


NAMESPACES = ("users", "products", "config")


@pytest.fixture
def store_config():
    return StoreConfig("test_db", namespaces=NAMESPACES)


@pytest.fixture
def store(store_config):
    return InMemStore(store_config).open()


@pytest.fixture
def cache(store):
    return TTLCache(store)


@pytest.fixture(autouse=True)
def cleanup_scheduler():
    """Stop the shared scheduler between tests."""
    yield
    PreloadScheduler.shutdown(wait=False)
