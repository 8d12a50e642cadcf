from __future__ import annotations

from .documents import DocumentStore, SqliteDocumentStore, item_id_of
from .index_store import LocalIndexStore
from .types import BulkGetResult, BulkResult, IndexEntry, Item, OrderedIndex, StoredIndex

__all__ = [
    "BulkGetResult",
    "BulkResult",
    "DocumentStore",
    "IndexEntry",
    "Item",
    "LocalIndexStore",
    "OrderedIndex",
    "SqliteDocumentStore",
    "StoredIndex",
    "item_id_of",
]
