from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..errors import DanglingReference, StorageUnavailable
from .documents import DocumentStore, item_id_of
from .types import BulkResult, Item, OrderedIndex

logger = logging.getLogger(__name__)


class LocalIndexStore:
    """Ordered index documents plus an in-memory item cache over a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self._cache: dict[str, Item] = {}

    def cached(self, item_id: str) -> Item | None:
        return self._cache.get(item_id)

    def remember(self, items: Iterable[Item]) -> None:
        for item in items:
            item_id = item_id_of(item)
            if item_id:
                self._cache[item_id] = item

    def forget(self, ids: Iterable[str]) -> None:
        for item_id in ids:
            self._cache.pop(item_id, None)

    async def load_index(self, list_id: str) -> OrderedIndex:
        try:
            stored = await self.store.get_index(list_id)
        except OSError as exc:
            raise StorageUnavailable(f"cannot load index {list_id!r}: {exc}") from exc
        if stored is None:
            logger.debug("index missing list_id=%s; starting empty", list_id)
            return OrderedIndex(list_id=list_id)
        index = OrderedIndex.from_doc(list_id, stored["doc"], rev=int(stored["rev"]))
        logger.debug("index loaded list_id=%s size=%s rev=%s", list_id, len(index), index.rev)
        return index

    async def save_index(self, index: OrderedIndex) -> None:
        try:
            index.rev = await self.store.put_index(
                index.list_id, index.to_doc(), expected_rev=index.rev
            )
        except OSError as exc:
            raise StorageUnavailable(f"cannot save index {index.list_id!r}: {exc}") from exc
        logger.debug("index saved list_id=%s size=%s rev=%s", index.list_id, len(index), index.rev)

    async def resolve_items(self, ids: Sequence[str]) -> list[Item | None]:
        resolved: dict[str, Item] = {}
        missing: list[str] = []
        for item_id in ids:
            item = self._cache.get(item_id)
            if item is not None:
                resolved[item_id] = item
            elif item_id not in missing:
                missing.append(item_id)
        if missing:
            for result in await self.store.bulk_get(missing):
                if result.item is None:
                    err = DanglingReference(result.id, result.error)
                    logger.warning("%s", err)
                    continue
                self._cache[result.id] = result.item
                resolved[result.id] = result.item
        return [resolved.get(item_id) for item_id in ids]

    async def upsert_items(self, items: Sequence[Item]) -> BulkResult:
        if not items:
            return BulkResult()
        result = await self.store.bulk_put(items)
        stored = set(result.ok)
        self.remember(item for item in items if item_id_of(item) in stored)
        for item_id, error in result.errors.items():
            logger.warning("item write failed id=%s: %s", item_id, error)
        return result

    async def remove_items(self, ids: Sequence[str]) -> BulkResult:
        self.forget(ids)
        if not ids:
            return BulkResult()
        result = await self.store.bulk_remove(ids)
        for item_id, error in result.errors.items():
            if error == "not_found":
                continue
            logger.warning("item delete failed id=%s: %s", item_id, error)
        return result
