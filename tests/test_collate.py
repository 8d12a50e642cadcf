from __future__ import annotations

import copy
import datetime as dt

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from offlist.collate import (
    UNDEFINED,
    collation_index,
    compare,
    normalize_key,
    position_after,
    sort_key,
)

settings.register_profile(
    "collate",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
settings.load_profile("collate")

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    st.floats(allow_nan=True, allow_infinity=True),
    st.text(max_size=8),
)
json_values = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=4), children, max_size=4),
    ),
    max_leaves=12,
)


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def test_type_precedence_orders_classes_regardless_of_content() -> None:
    ordered = [None, False, True, -5, 0, 2.5, "", "a", "b", [], [0], {}, {"a": 1}]
    shuffled = list(reversed(ordered))
    assert sorted(shuffled, key=sort_key) == ordered


def test_booleans_are_not_numbers() -> None:
    assert compare(True, 0) < 0
    assert compare(False, -100) < 0
    assert compare(1, True) > 0
    assert collation_index(True) < collation_index(0)


def test_numbers_compare_by_value() -> None:
    assert compare(1, 1.0) == 0
    assert compare(-1, 0.5) < 0
    assert compare(10, 9.99) > 0


def test_non_finite_numbers_collate_as_null() -> None:
    assert normalize_key(float("nan")) is None
    assert compare(float("nan"), None) == 0
    assert compare(float("inf"), None) == 0
    assert compare(float("-inf"), 0) < 0
    assert compare([float("nan")], [None]) == 0


def test_undefined_is_null_and_dropped_from_objects() -> None:
    assert compare(UNDEFINED, None) == 0
    assert normalize_key({"a": UNDEFINED, "b": 1}) == {"b": 1}
    assert compare({"a": UNDEFINED, "b": 1}, {"b": 1}) == 0


def test_dates_collate_as_iso_strings() -> None:
    when = dt.datetime(2020, 1, 2, 3, 4, 5, 678000, tzinfo=dt.UTC)
    assert normalize_key(when) == "2020-01-02T03:04:05.678Z"
    assert compare(when, "2020-01-02T03:04:05.678Z") == 0
    assert compare(dt.date(2021, 5, 1), "2021-05-01") == 0
    naive = dt.datetime(2020, 1, 2, 3, 4, 5)
    assert normalize_key(naive) == "2020-01-02T03:04:05.000Z"
    # Dates are strings, so they sort after every number.
    assert compare(when, 10**12) > 0


def test_strings_use_code_unit_order() -> None:
    assert compare("a", "b") < 0
    assert compare("ab", "a") > 0
    assert compare("B", "a") < 0
    # U+FFFF sorts after an astral character's leading surrogate (U+D83D).
    assert compare("\uffff", "\U0001f600") > 0
    assert compare("é", "z") > 0


def test_arrays_compare_elementwise_then_by_length() -> None:
    assert compare([1, 2], [1, 2, 0]) < 0
    assert compare([1, 3], [1, 2, 9]) > 0
    assert compare([], [None]) < 0
    assert compare((1, "a"), [1, "a"]) == 0


def test_objects_compare_keys_then_values_then_size() -> None:
    assert compare({"a": 1}, {"b": 0}) < 0
    assert compare({"a": 1}, {"a": 2}) < 0
    assert compare({"a": 1}, {"a": 1, "b": 0}) < 0
    assert compare({"b": 1, "a": 1}, {"a": 1, "b": 1}) > 0


def test_unsupported_types_raise() -> None:
    with pytest.raises(TypeError, match="unsupported sort key type"):
        compare({1, 2}, 1)


def test_position_after_skips_ties() -> None:
    keys = [1, 2, 2, 3]
    assert position_after(keys, None) == 0
    assert position_after(keys, 0) == 0
    assert position_after(keys, 2) == 3
    assert position_after(keys, 2.5) == 3
    assert position_after(keys, 5) == 4
    assert position_after([], "a") == 0


@given(json_values)
def test_compare_is_reflexive(value) -> None:
    assert compare(value, copy.deepcopy(value)) == 0


@given(json_values, json_values)
def test_compare_is_antisymmetric(a, b) -> None:
    assert _sign(compare(a, b)) == -_sign(compare(b, a))


@given(json_values, json_values, json_values)
def test_compare_is_transitive(a, b, c) -> None:
    a, b, c = sorted([a, b, c], key=sort_key)
    assert compare(a, b) <= 0
    assert compare(b, c) <= 0
    assert compare(a, c) <= 0


@given(st.lists(json_values, max_size=10))
def test_sorting_is_deterministic(values) -> None:
    once = sorted(values, key=sort_key)
    twice = sorted(list(reversed(once)), key=sort_key)
    assert all(compare(x, y) == 0 for x, y in zip(once, twice))


@given(json_values, json_values)
def test_different_type_classes_compare_by_precedence(a, b) -> None:
    na, nb = normalize_key(a), normalize_key(b)
    if collation_index(na) != collation_index(nb):
        assert _sign(compare(a, b)) == _sign(collation_index(na) - collation_index(nb))
