from __future__ import annotations

from .merge import (
    DEFAULT_LIST_ID,
    ListSyncEngine,
    MergeResult,
    SpliceDelta,
    SpliceObserver,
    content_hash,
    default_sort_key,
)
from .page_loader import PageLoader, default_response_parser

__all__ = [
    "DEFAULT_LIST_ID",
    "ListSyncEngine",
    "MergeResult",
    "PageLoader",
    "SpliceDelta",
    "SpliceObserver",
    "content_hash",
    "default_response_parser",
    "default_sort_key",
]
