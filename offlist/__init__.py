from __future__ import annotations

__version__ = "0.3.0"

from .collate import compare, normalize_key, sort_key
from .config import ListConfig
from .errors import (
    ConcurrentModification,
    ConfigurationError,
    DanglingReference,
    OfflistError,
    RemoteFetchError,
    StorageUnavailable,
)
from .store import IndexEntry, LocalIndexStore, OrderedIndex, SqliteDocumentStore
from .sync import ListSyncEngine, MergeResult, PageLoader

__all__ = [
    "ConcurrentModification",
    "ConfigurationError",
    "DanglingReference",
    "IndexEntry",
    "ListConfig",
    "ListSyncEngine",
    "LocalIndexStore",
    "MergeResult",
    "OfflistError",
    "OrderedIndex",
    "PageLoader",
    "RemoteFetchError",
    "SqliteDocumentStore",
    "StorageUnavailable",
    "compare",
    "normalize_key",
    "sort_key",
]
