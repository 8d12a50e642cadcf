from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..collate import compare, normalize_key, position_after, sort_key
from ..config import DEFAULT_LIST_ID
from ..errors import ConcurrentModification
from ..store import DocumentStore, IndexEntry, Item, LocalIndexStore, OrderedIndex, item_id_of

logger = logging.getLogger(__name__)

SpliceObserver = Callable[[int, int, list[Item]], None]
SortKeyGenerator = Callable[[Item], Any]


def default_sort_key(item: Item) -> Any:
    return item_id_of(item)


def content_hash(item: Item) -> str:
    raw = json.dumps(item, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class SpliceDelta:
    position: int
    removed: int
    inserted: list[Item] = field(default_factory=list)


@dataclass
class MergeResult:
    inserted: int = 0
    removed: int = 0
    updated: int = 0
    deltas: list[SpliceDelta] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deltas)


class ListSyncEngine:
    """Keeps one list's local ordered index in step with sorted remote pages.

    The index and item cache are loaded once per engine and kept warm. The
    engine is not safe for overlapping ``upsert`` calls; callers serialize
    work per list and merge pages in remote order.
    """

    def __init__(
        self,
        store: DocumentStore | LocalIndexStore,
        *,
        list_id: str = DEFAULT_LIST_ID,
        sort_key_generator: SortKeyGenerator | None = None,
        track_content: bool = False,
    ):
        self.local = store if isinstance(store, LocalIndexStore) else LocalIndexStore(store)
        self.list_id = list_id or DEFAULT_LIST_ID
        self.sort_key_generator = sort_key_generator or default_sort_key
        self.track_content = track_content
        self._index: OrderedIndex | None = None
        self._observers: list[SpliceObserver] = []

    # Lifecycle

    async def open(self) -> OrderedIndex:
        if self._index is None:
            self._index = await self.local.load_index(self.list_id)
        return self._index

    async def reload(self) -> OrderedIndex:
        if self._index is not None:
            self.local.forget(self._index.ids())
        self._index = None
        return await self.open()

    @property
    def index(self) -> OrderedIndex:
        if self._index is None:
            raise RuntimeError("engine not opened; await open() first")
        return self._index

    @property
    def item_count(self) -> int:
        return len(self._index) if self._index is not None else 0

    # Observers

    def splice_observer(self, callback: SpliceObserver) -> None:
        self._observers.append(callback)

    def remove_observer(self, callback: SpliceObserver) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _emit(
        self, result: MergeResult, position: int, removed: int, inserted: Sequence[Item]
    ) -> None:
        delta = SpliceDelta(position=position, removed=removed, inserted=list(inserted))
        result.deltas.append(delta)
        for callback in list(self._observers):
            try:
                callback(delta.position, delta.removed, list(delta.inserted))
            except Exception:
                logger.exception("splice observer failed list_id=%s", self.list_id)

    # Keys and entries

    def key_for(self, item: Item) -> Any:
        return normalize_key(self.sort_key_generator(item))

    def _entry_for(self, item: Item, item_id: str) -> IndexEntry:
        return IndexEntry(
            id=item_id,
            sort_key=self.key_for(item),
            hash=content_hash(item) if self.track_content else None,
        )

    def page_entries(self, page_size: int, start_key: Any = None) -> list[IndexEntry]:
        entries = self.index.entries
        start = position_after(self.index.keys(), start_key)
        return entries[start : start + max(page_size, 0)]

    # Reads

    async def read_page(self, page_size: int, start_key: Any = None) -> list[Item | None]:
        """Serve a page from the local index; an empty list is a local miss."""

        await self.open()
        entries = self.page_entries(page_size, start_key)
        if not entries:
            return []
        return await self.local.resolve_items([entry.id for entry in entries])

    # Merge

    def _prepare_page(self, items: Sequence[Item], start_key: Any) -> list[tuple[str, Item, Any]]:
        page: list[tuple[str, Item, Any]] = []
        for item in items:
            item_id = item_id_of(item)
            if not item_id:
                logger.warning("merge skipped item without id list_id=%s", self.list_id)
                continue
            page.append((item_id, item, self.key_for(item)))
        if any(compare(page[n][2], page[n + 1][2]) > 0 for n in range(len(page) - 1)):
            logger.warning("merge page out of order list_id=%s; sorting", self.list_id)
            page.sort(key=lambda row: sort_key(row[2]))
        if start_key is not None:
            before = len(page)
            page = [row for row in page if compare(row[2], start_key) > 0]
            if len(page) != before:
                logger.debug(
                    "merge dropped %s rows at or before start key list_id=%s",
                    before - len(page),
                    self.list_id,
                )
        return page

    def _drop_duplicate(
        self, result: MergeResult, item_id: str, keep: int, removed_ids: list[str]
    ) -> int:
        index = self.index
        dup = index.position_of(item_id, skip=keep)
        if dup == -1:
            return -1
        del index.entries[dup]
        result.removed += 1
        removed_ids.append(item_id)
        self._emit(result, dup, 1, [])
        return dup

    def _merge_walk(
        self,
        page: list[tuple[str, Item, Any]],
        start_key: Any,
        end_of_list: bool,
    ) -> tuple[MergeResult, list[Item], list[str], bool]:
        index = self.index
        entries = index.entries
        result = MergeResult()
        accepted: list[Item] = []
        removed_ids: list[str] = []
        rehashed = False
        idx = position_after(index.keys(), start_key)
        i = 0
        while i < len(page):
            if idx >= len(entries):
                tail: list[tuple[str, Item, Any]] = []
                seen: set[str] = set()
                for row in page[i:]:
                    if row[0] not in seen:
                        seen.add(row[0])
                        tail.append(row)
                for item_id, _item, _key in tail:
                    if self._drop_duplicate(result, item_id, -1, removed_ids) != -1:
                        idx -= 1
                entries[idx:idx] = [self._entry_for(item, item_id) for item_id, item, _ in tail]
                accepted.extend(item for _, item, _ in tail)
                result.inserted += len(tail)
                self._emit(result, idx, 0, [item for _, item, _ in tail])
                idx += len(tail)
                break

            item_id, item, key = page[i]
            local = entries[idx]
            order = compare(key, local.sort_key)
            if order < 0:
                entries.insert(idx, self._entry_for(item, item_id))
                accepted.append(item)
                result.inserted += 1
                self._emit(result, idx, 0, [item])
                dup = self._drop_duplicate(result, item_id, idx, removed_ids)
                idx += 1
                if 0 <= dup < idx:
                    idx -= 1
                i += 1
                continue
            if order > 0:
                del entries[idx]
                result.removed += 1
                removed_ids.append(local.id)
                self._emit(result, idx, 1, [])
                continue

            if local.id != item_id:
                logger.debug(
                    "merge tie skipped id=%s local_id=%s list_id=%s",
                    item_id,
                    local.id,
                    self.list_id,
                )
            else:
                accepted.append(item)
                if self.track_content:
                    digest = content_hash(item)
                    if local.hash is None:
                        local.hash = digest
                        rehashed = True
                    elif local.hash != digest:
                        local.hash = digest
                        rehashed = True
                        result.updated += 1
                        self._emit(result, idx, 1, [item])
            idx += 1
            i += 1

        if end_of_list and idx < len(entries):
            stale = entries[idx:]
            del entries[idx:]
            result.removed += len(stale)
            removed_ids.extend(entry.id for entry in stale)
            self._emit(result, idx, len(stale), [])
        return result, accepted, removed_ids, rehashed

    async def _commit(self, index: OrderedIndex, removed_ids: Sequence[str]) -> None:
        try:
            await self.local.save_index(index)
        except ConcurrentModification:
            # The walk ran on a stale revision; the next call reloads.
            self.local.forget(index.ids())
            self._index = None
            raise
        if removed_ids:
            present = set(index.ids())
            gone = [item_id for item_id in dict.fromkeys(removed_ids) if item_id not in present]
            await self.local.remove_items(gone)

    async def upsert(
        self,
        items: Sequence[Item],
        start_key: Any = None,
        end_of_list: bool = False,
    ) -> MergeResult:
        """Merge a sorted remote page that starts after ``start_key`` into the index.

        Rows the walk places or matches by id are written to the item store
        before the index is saved. Items the walk removed are deleted from
        the store only after the save succeeds. A ``ConcurrentModification``
        from the save discards the in-memory index so the next call reloads.
        """

        index = await self.open()
        start_key = normalize_key(start_key)
        page = self._prepare_page(items, start_key)

        result, accepted, removed_ids, rehashed = self._merge_walk(page, start_key, end_of_list)

        if accepted:
            await self.local.upsert_items(accepted)
        if result.changed or rehashed or index.rev == 0:
            await self._commit(index, removed_ids)
        logger.debug(
            "merge list_id=%s rows=%s inserted=%s removed=%s updated=%s size=%s",
            self.list_id,
            len(page),
            result.inserted,
            result.removed,
            result.updated,
            len(index),
        )
        return result

    async def remove_entries(self, ids: Sequence[str]) -> MergeResult:
        """Drop entries by id, e.g. pointers whose item is missing from the store."""

        index = await self.open()
        result = MergeResult()
        targets = set(ids)
        pos = 0
        while pos < len(index.entries):
            entry = index.entries[pos]
            if entry.id not in targets:
                pos += 1
                continue
            del index.entries[pos]
            result.removed += 1
            self._emit(result, pos, 1, [])
        if result.changed:
            await self._commit(index, list(targets))
        return result
