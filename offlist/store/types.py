from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict

Item = dict[str, Any]


@dataclass
class IndexEntry:
    id: str
    sort_key: Any
    hash: str | None = None

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"id": self.id, "sortKey": self.sort_key}
        if self.hash is not None:
            doc["hash"] = self.hash
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> IndexEntry:
        raw_id = doc.get("id", doc.get("_id"))
        if raw_id is None:
            raise ValueError("index entry missing id")
        raw_hash = doc.get("hash")
        return cls(
            id=str(raw_id),
            sort_key=doc.get("sortKey"),
            hash=str(raw_hash) if raw_hash is not None else None,
        )


@dataclass
class OrderedIndex:
    list_id: str
    entries: list[IndexEntry] = field(default_factory=list)
    rev: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def ids(self) -> list[str]:
        return [entry.id for entry in self.entries]

    def keys(self) -> list[Any]:
        return [entry.sort_key for entry in self.entries]

    def position_of(self, item_id: str, *, skip: int | None = None) -> int:
        for pos, entry in enumerate(self.entries):
            if pos != skip and entry.id == item_id:
                return pos
        return -1

    def to_doc(self) -> dict[str, Any]:
        return {"listId": self.list_id, "items": [entry.to_doc() for entry in self.entries]}

    @classmethod
    def from_doc(cls, list_id: str, doc: dict[str, Any] | None, *, rev: int = 0) -> OrderedIndex:
        if not doc:
            return cls(list_id=list_id, rev=rev)
        raw_items = doc.get("items")
        if raw_items is None and isinstance(doc.get("content"), dict):
            raw_items = doc["content"].get("items")
        entries = [
            IndexEntry.from_doc(raw) for raw in raw_items or [] if isinstance(raw, dict)
        ]
        return cls(list_id=str(doc.get("listId") or list_id), entries=entries, rev=rev)


class StoredIndex(TypedDict):
    doc: dict[str, Any]
    rev: int


@dataclass
class BulkGetResult:
    id: str
    item: Item | None = None
    error: str | None = None


@dataclass
class BulkResult:
    ok: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return bool(self.errors)
