from __future__ import annotations

import copy
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from offlist.config import CONFIG_ENV_OVERRIDES
from offlist.errors import ConcurrentModification, StorageUnavailable
from offlist.store import BulkGetResult, BulkResult, StoredIndex, item_id_of


@pytest.fixture(autouse=True)
def _isolate_offlist_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OFFLIST_CONFIG", str(tmp_path / "config" / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


class MemoryDocumentStore:
    def __init__(self) -> None:
        self.indexes: dict[str, StoredIndex] = {}
        self.items: dict[str, dict[str, Any]] = {}
        self.unavailable = False
        self.failing_ids: set[str] = set()
        self.calls: list[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.unavailable:
            raise StorageUnavailable("store offline")

    async def get_index(self, list_id: str) -> StoredIndex | None:
        self._check("get_index")
        stored = self.indexes.get(list_id)
        return copy.deepcopy(stored) if stored else None

    async def put_index(self, list_id: str, doc: dict[str, Any], *, expected_rev: int) -> int:
        self._check("put_index")
        current = self.indexes.get(list_id)
        actual = current["rev"] if current else None
        if (actual or 0) != expected_rev:
            raise ConcurrentModification(list_id, expected_rev=expected_rev, actual_rev=actual)
        self.indexes[list_id] = {"doc": copy.deepcopy(doc), "rev": expected_rev + 1}
        return expected_rev + 1

    async def get(self, item_id: str) -> dict[str, Any] | None:
        self._check("get")
        return self.items.get(item_id)

    async def bulk_get(self, ids: Sequence[str]) -> list[BulkGetResult]:
        self._check("bulk_get")
        results = []
        for item_id in ids:
            if item_id in self.failing_ids:
                results.append(BulkGetResult(id=item_id, error="boom"))
            elif item_id in self.items:
                results.append(BulkGetResult(id=item_id, item=copy.deepcopy(self.items[item_id])))
            else:
                results.append(BulkGetResult(id=item_id, error="not_found"))
        return results

    async def bulk_put(self, items: Sequence[dict[str, Any]]) -> BulkResult:
        self._check("bulk_put")
        result = BulkResult()
        for item in items:
            item_id = item_id_of(item) or ""
            if item_id in self.failing_ids:
                result.errors[item_id] = "boom"
                continue
            self.items[item_id] = copy.deepcopy(item)
            result.ok.append(item_id)
        return result

    async def remove(self, item_id: str) -> bool:
        result = await self.bulk_remove([item_id])
        return item_id in result.ok

    async def bulk_remove(self, ids: Sequence[str]) -> BulkResult:
        self._check("bulk_remove")
        result = BulkResult()
        for item_id in ids:
            if self.items.pop(item_id, None) is None:
                result.errors[item_id] = "not_found"
            else:
                result.ok.append(item_id)
        return result


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()
