from __future__ import annotations


class OfflistError(Exception):
    """Base class for offlist errors."""


class ConfigurationError(OfflistError, ValueError):
    pass


class RemoteFetchError(OfflistError):
    """A page could not be fetched: transport failure, non-200 status or bad body."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class StorageUnavailable(OfflistError):
    """The document store could not be read or written."""


class ConcurrentModification(OfflistError):
    """The stored index revision moved since it was loaded; reload and retry."""

    def __init__(self, list_id: str, *, expected_rev: int, actual_rev: int | None):
        super().__init__(
            f"index for list {list_id!r} changed (expected rev {expected_rev}, found {actual_rev})"
        )
        self.list_id = list_id
        self.expected_rev = expected_rev
        self.actual_rev = actual_rev


class DanglingReference(OfflistError):
    """An index entry points at an id that is missing from the item store."""

    def __init__(self, item_id: str, reason: str | None = None):
        detail = f": {reason}" if reason else ""
        super().__init__(f"dangling index entry {item_id!r}{detail}")
        self.item_id = item_id
        self.reason = reason
