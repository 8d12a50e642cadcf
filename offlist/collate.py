from __future__ import annotations

import bisect
import datetime as dt
import functools
import math
from collections.abc import Mapping, Sequence
from typing import Any

NULL_INDEX = 1
BOOL_INDEX = 2
NUMBER_INDEX = 3
STRING_INDEX = 4
ARRAY_INDEX = 5
OBJECT_INDEX = 6


class _Undefined:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


# A missing value: collates as null and is dropped from objects.
UNDEFINED: Any = _Undefined()


def _iso_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    value = value.astimezone(dt.UTC)
    millis = value.microsecond // 1000
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def normalize_key(key: Any) -> Any:
    if key is None or key is UNDEFINED:
        return None
    if isinstance(key, bool):
        return key
    if isinstance(key, float):
        return key if math.isfinite(key) else None
    if isinstance(key, dt.datetime):
        return _iso_datetime(key)
    if isinstance(key, dt.date):
        return key.isoformat()
    if isinstance(key, (list, tuple)):
        return [normalize_key(item) for item in key]
    if isinstance(key, Mapping):
        return {k: normalize_key(v) for k, v in key.items() if v is not UNDEFINED}
    return key


def collation_index(value: Any) -> int:
    """Rank of a normalized value's type class: null < bool < number < string < array < object."""

    if value is None:
        return NULL_INDEX
    if isinstance(value, bool):
        return BOOL_INDEX
    if isinstance(value, (int, float)):
        return NUMBER_INDEX
    if isinstance(value, str):
        return STRING_INDEX
    if isinstance(value, list):
        return ARRAY_INDEX
    if isinstance(value, Mapping):
        return OBJECT_INDEX
    raise TypeError(f"unsupported sort key type: {type(value).__name__}")


def _sign(value: float) -> int:
    if value < 0:
        return -1
    if value > 0:
        return 1
    return 0


def _string_collate(a: str, b: str) -> int:
    if a == b:
        return 0
    if a.isascii() and b.isascii():
        return -1 if a < b else 1
    # Code-unit order: astral characters sort as surrogate pairs.
    ua = a.encode("utf-16-be", "surrogatepass")
    ub = b.encode("utf-16-be", "surrogatepass")
    return -1 if ua < ub else 1


def _array_collate(a: Sequence[Any], b: Sequence[Any]) -> int:
    for left, right in zip(a, b):
        result = _collate(left, right)
        if result != 0:
            return result
    return _sign(len(a) - len(b))


def _object_collate(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
    a_keys = list(a.keys())
    b_keys = list(b.keys())
    for a_key, b_key in zip(a_keys, b_keys):
        result = _collate(a_key, b_key)
        if result != 0:
            return result
        result = _collate(a[a_key], b[b_key])
        if result != 0:
            return result
    return _sign(len(a_keys) - len(b_keys))


def _collate(a: Any, b: Any) -> int:
    ai = collation_index(a)
    bi = collation_index(b)
    if ai != bi:
        return _sign(ai - bi)
    if ai == NULL_INDEX:
        return 0
    if ai == BOOL_INDEX:
        return _sign(int(a) - int(b))
    if ai == NUMBER_INDEX:
        return -1 if a < b else (1 if a > b else 0)
    if ai == STRING_INDEX:
        return _string_collate(a, b)
    if ai == ARRAY_INDEX:
        return _array_collate(a, b)
    return _object_collate(a, b)


def compare(a: Any, b: Any) -> int:
    """Total order over JSON-shaped values, returning -1, 0 or 1.

    Both sides are normalized first (``UNDEFINED`` and non-finite numbers
    become null, dates become ISO-8601 strings). Values of different type
    classes compare by class alone.
    """

    if a is b:
        return 0
    return _collate(normalize_key(a), normalize_key(b))


sort_key = functools.cmp_to_key(compare)


def position_after(keys: Sequence[Any], start_key: Any) -> int:
    """Index right after the last key <= ``start_key``; 0 when ``start_key`` is None.

    ``keys`` must already be sorted by :func:`compare`.
    """

    if start_key is None or start_key is UNDEFINED:
        return 0
    return bisect.bisect_right(keys, sort_key(start_key), key=sort_key)
