"""
Error taxonomy for the cache and its storage backends.
"""


class CacheError(Exception):
    """Base class for all cache errors."""


class UninitializedStoreError(CacheError):
    """Raised when a store is used before open() (or after close())."""

    def __init__(self, name: str):
        super().__init__(f"Store {name!r} not initialized")
        self.name = name


class UnknownNamespaceError(CacheError, KeyError):
    """Raised when a namespace was not declared in the store config."""

    def __init__(self, namespace: str):
        super().__init__(namespace)
        self.namespace = namespace

    def __str__(self) -> str:
        return f"Unknown namespace: {self.namespace!r}"


class StoreWriteError(CacheError):
    """Raised when a backend fails to persist or delete a record."""
