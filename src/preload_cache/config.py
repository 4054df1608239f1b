"""
Configuration objects for stores and the preload engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StoreConfig:
    """
    Store construction config.

    Attributes:
        namespace_id: name of the backing database / key prefix
        schema_version: schema version, bumping it triggers an upgrade on open
        namespaces: the fixed set of namespaces ("stores") the backend holds
        debug_logging: emit progress logs from the cache layer
    """

    namespace_id: str
    schema_version: int = 1
    namespaces: tuple[str, ...] = field(default_factory=tuple)
    debug_logging: bool = False

    def __post_init__(self):
        if not self.namespace_id:
            raise ValueError("StoreConfig requires a namespace_id")
        if self.schema_version < 1:
            raise ValueError("schema_version must be >= 1")
        # Accept any iterable of names
        object.__setattr__(self, "namespaces", tuple(self.namespaces))


@dataclass(frozen=True)
class EngineConfig:
    """
    Preload engine settings.

    Attributes:
        concurrency: number of workers pulling definitions
        inter_item_delay: seconds a worker pauses after loading an item
        max_retries: retries after the first failed attempt
        retry_backoff: fixed sleep in seconds between attempts
        debug: emit progress logs
    """

    concurrency: int = 4
    inter_item_delay: float = 0.0
    max_retries: int = 0
    retry_backoff: float = 0.25
    debug: bool = False

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.inter_item_delay < 0:
            raise ValueError("inter_item_delay must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff must be >= 0")
