from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol, TypeVar

from .. import db
from ..errors import ConcurrentModification, StorageUnavailable
from .types import BulkGetResult, BulkResult, Item, StoredIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentStore(Protocol):
    """Persistent store holding one index document per list and the items themselves."""

    async def get_index(self, list_id: str) -> StoredIndex | None: ...

    async def put_index(self, list_id: str, doc: dict[str, Any], *, expected_rev: int) -> int: ...

    async def get(self, item_id: str) -> Item | None: ...

    async def bulk_get(self, ids: Sequence[str]) -> list[BulkGetResult]: ...

    async def bulk_put(self, items: Sequence[Item]) -> BulkResult: ...

    async def remove(self, item_id: str) -> bool: ...

    async def bulk_remove(self, ids: Sequence[str]) -> BulkResult: ...


def _now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def item_id_of(item: Item) -> str | None:
    raw = item.get("id", item.get("_id"))
    if raw is None:
        return None
    return str(raw)


class SqliteDocumentStore:
    """SQLite-backed DocumentStore; calls run in a worker thread."""

    def __init__(self, db_path: Path | str = db.DEFAULT_DB_PATH):
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()
        self._lock = threading.Lock()
        try:
            self.conn = db.connect(self.db_path, check_same_thread=False)
            db.initialize_schema(self.conn)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"cannot open store at {self.db_path}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    async def _run(self, fn: Callable[[], T]) -> T:
        def _locked() -> T:
            with self._lock:
                return fn()

        try:
            return await asyncio.to_thread(_locked)
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    # Index documents

    def _get_index_sync(self, list_id: str) -> StoredIndex | None:
        row = self.conn.execute(
            "SELECT rev, doc_json FROM list_index WHERE list_id = ?",
            (list_id,),
        ).fetchone()
        if row is None:
            return None
        try:
            doc = json.loads(row["doc_json"])
        except json.JSONDecodeError as exc:
            raise StorageUnavailable(f"corrupt index document for list {list_id!r}") from exc
        if not isinstance(doc, dict):
            raise StorageUnavailable(f"corrupt index document for list {list_id!r}")
        return {"doc": doc, "rev": int(row["rev"])}

    async def get_index(self, list_id: str) -> StoredIndex | None:
        return await self._run(lambda: self._get_index_sync(list_id))

    def _put_index_sync(self, list_id: str, doc: dict[str, Any], expected_rev: int) -> int:
        row = self.conn.execute(
            "SELECT rev FROM list_index WHERE list_id = ?",
            (list_id,),
        ).fetchone()
        current = int(row["rev"]) if row is not None else None
        if current is None and expected_rev != 0:
            raise ConcurrentModification(list_id, expected_rev=expected_rev, actual_rev=None)
        if current is not None and current != expected_rev:
            raise ConcurrentModification(list_id, expected_rev=expected_rev, actual_rev=current)
        new_rev = expected_rev + 1
        items = doc.get("items")
        size = len(items) if isinstance(items, list) else 0
        payload = db.to_json(doc)
        now = _now_iso()
        try:
            if current is None:
                self.conn.execute(
                    """
                    INSERT INTO list_index(list_id, rev, doc_json, size, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (list_id, new_rev, payload, size, now),
                )
            else:
                self.conn.execute(
                    """
                    UPDATE list_index
                    SET rev = ?, doc_json = ?, size = ?, updated_at = ?
                    WHERE list_id = ? AND rev = ?
                    """,
                    (new_rev, payload, size, now, list_id, expected_rev),
                )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        return new_rev

    async def put_index(self, list_id: str, doc: dict[str, Any], *, expected_rev: int) -> int:
        return await self._run(lambda: self._put_index_sync(list_id, doc, expected_rev))

    def _drop_index_sync(self, list_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM list_index WHERE list_id = ?", (list_id,))
        self.conn.commit()
        return cur.rowcount > 0

    async def drop_index(self, list_id: str) -> bool:
        return await self._run(lambda: self._drop_index_sync(list_id))

    def _list_indexes_sync(self) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT list_id, rev, size, updated_at FROM list_index ORDER BY list_id"
        ).fetchall()
        return db.rows_to_dicts(rows)

    async def list_indexes(self) -> list[dict[str, Any]]:
        return await self._run(self._list_indexes_sync)

    # Items

    def _get_sync(self, item_id: str) -> Item | None:
        row = self.conn.execute("SELECT body_json FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        return db.from_json(row["body_json"])

    async def get(self, item_id: str) -> Item | None:
        return await self._run(lambda: self._get_sync(item_id))

    def _bulk_get_sync(self, ids: Sequence[str]) -> list[BulkGetResult]:
        results: list[BulkGetResult] = []
        for item_id in ids:
            try:
                row = self.conn.execute(
                    "SELECT body_json FROM items WHERE id = ?", (item_id,)
                ).fetchone()
            except sqlite3.Error as exc:
                logger.warning("bulk_get failed id=%s: %s", item_id, exc)
                results.append(BulkGetResult(id=item_id, error=str(exc)))
                continue
            if row is None:
                results.append(BulkGetResult(id=item_id, error="not_found"))
                continue
            try:
                item = json.loads(row["body_json"])
            except json.JSONDecodeError:
                results.append(BulkGetResult(id=item_id, error="corrupt_document"))
                continue
            results.append(BulkGetResult(id=item_id, item=item))
        return results

    async def bulk_get(self, ids: Sequence[str]) -> list[BulkGetResult]:
        ids = list(ids)
        return await self._run(lambda: self._bulk_get_sync(ids))

    def _bulk_put_sync(self, items: Sequence[Item]) -> BulkResult:
        result = BulkResult()
        now = _now_iso()
        for index, item in enumerate(items):
            item_id = item_id_of(item)
            if not item_id:
                result.errors[f"#{index}"] = "missing_id"
                continue
            try:
                body = json.dumps(item, ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                result.errors[item_id] = f"not_serializable: {exc}"
                continue
            try:
                self.conn.execute(
                    """
                    INSERT INTO items(id, body_json, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        body_json = excluded.body_json,
                        updated_at = excluded.updated_at
                    """,
                    (item_id, body, now),
                )
            except sqlite3.Error as exc:
                result.errors[item_id] = str(exc)
                continue
            result.ok.append(item_id)
        self.conn.commit()
        return result

    async def bulk_put(self, items: Sequence[Item]) -> BulkResult:
        items = list(items)
        return await self._run(lambda: self._bulk_put_sync(items))

    def _bulk_remove_sync(self, ids: Sequence[str]) -> BulkResult:
        result = BulkResult()
        for item_id in ids:
            try:
                cur = self.conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            except sqlite3.Error as exc:
                result.errors[item_id] = str(exc)
                continue
            if cur.rowcount > 0:
                result.ok.append(item_id)
            else:
                result.errors[item_id] = "not_found"
        self.conn.commit()
        return result

    async def remove(self, item_id: str) -> bool:
        result = await self.bulk_remove([item_id])
        return item_id in result.ok

    async def bulk_remove(self, ids: Sequence[str]) -> BulkResult:
        ids = list(ids)
        return await self._run(lambda: self._bulk_remove_sync(ids))
