"""Query Evaluation — verifies comparison rules, LIKE, composite sorting and paging.

Tests:
    - None equals only None; ordering with None on either side is false
    - Booleans compare only with booleans (True never equals 1)
    - Numbers compare numerically, including against numeric strings
    - Lists/dicts support only = and !=
    - LIKE is case-sensitive containment on the stored text form
    - Missing fields behave as None
    - Sort is stable, multi-key, None first ASC / last DESC
    - Paging applies offset then limit; inputs are never mutated
"""

import pytest

from hoistdb.core.domain_types import Operator
from hoistdb.core.query_builder import OrderKey, Predicate, QueryState, make_order_key
from hoistdb.core.query_eval import (
    apply_paging, compare_values, evaluate, filter_records, is_soft_deleted, matches,
    sort_records, text_form,
)


def _p(field, op, value):
    return Predicate(field, Operator(op), value)


# ─── compare_values ─────────────────────────────────────────────

def test_none_only_equals_none():
    assert compare_values(None, None) == 0
    assert compare_values(None, 0) is None
    assert compare_values("", None) is None


def test_booleans_never_equal_numbers():
    assert compare_values(True, 1) is None
    assert compare_values(False, 0) is None
    assert compare_values(True, True) == 0
    assert compare_values(False, True) == -1


def test_numbers_and_numeric_strings():
    assert compare_values(10, 9.5) == 1
    assert compare_values("10", 9) == 1
    assert compare_values(3, "3.0") == 0
    assert compare_values(3, "abc") is None


def test_strings_compare_lexically():
    assert compare_values("10", "9") == -1
    assert compare_values("b", "a") == 1


def test_containers_support_equality_only():
    assert compare_values([1, 2], [1, 2]) == 0
    assert compare_values({"a": 1}, {"a": 2}) is None
    assert compare_values([1], "x") is None


# ─── matches ────────────────────────────────────────────────────

def test_missing_field_behaves_as_none():
    assert matches({}, _p("x", "=", None))
    assert not matches({}, _p("x", "=", 1))
    assert matches({}, _p("x", "!=", 1))
    assert not matches({}, _p("x", ">", 1))


def test_ordering_against_none_is_false():
    record = {"age": None}
    for op in (">", ">=", "<", "<="):
        assert not matches(record, _p("age", op, 5))
        assert not matches({"age": 5}, _p("age", op, None))


@pytest.mark.parametrize("op", [">", ">=", "<", "<="])
def test_ordering_none_against_none_is_false(op):
    assert not matches({"age": None}, _p("age", op, None))
    assert not matches({}, _p("age", op, None))


def test_ordering_operators():
    record = {"age": 30}
    assert matches(record, _p("age", ">", 29))
    assert matches(record, _p("age", ">=", 30))
    assert matches(record, _p("age", "<", 31))
    assert matches(record, _p("age", "<=", 30))
    assert not matches(record, _p("age", "<", 30))


def test_mismatched_types_never_order():
    assert not matches({"age": "thirty"}, _p("age", ">", 1))
    assert matches({"age": "thirty"}, _p("age", "!=", 1))


def test_containers_equality():
    record = {"tags": ["a", "b"]}
    assert matches(record, _p("tags", "=", ["a", "b"]))
    assert matches(record, _p("tags", "!=", ["b", "a"]))
    assert not matches(record, _p("tags", ">", ["a"]))


def test_like_is_case_sensitive_containment():
    record = {"email": "Jane@Example.com"}
    assert matches(record, _p("email", "LIKE", "@Example"))
    assert not matches(record, _p("email", "LIKE", "@example"))


def test_like_on_non_strings_uses_text_form():
    assert matches({"n": 1234}, _p("n", "LIKE", "23"))
    assert matches({"n": 1234}, _p("n", "LIKE", 23))
    assert matches({"tags": ["email", "sms"]}, _p("tags", "LIKE", '"sms"'))
    assert not matches({"n": None}, _p("n", "LIKE", ""))


def test_text_form():
    assert text_form(True) == "1"
    assert text_form(False) == "0"
    assert text_form({"a": [1, 2]}) == '{"a":[1,2]}'
    assert text_form(1.5) == "1.5"


def test_is_soft_deleted():
    assert is_soft_deleted({"deleted": True})
    assert is_soft_deleted({"deleted": 1})
    assert not is_soft_deleted({"deleted": False})
    assert not is_soft_deleted({})


# ─── Sorting ────────────────────────────────────────────────────

def test_sort_is_stable_on_ties():
    rows = [{"id": i, "group": g} for i, g in enumerate(["b", "a", "b", "a", "b"], 1)]
    asc = sort_records(rows, [make_order_key("group")])
    assert [r["id"] for r in asc] == [2, 4, 1, 3, 5]
    desc = sort_records(rows, [make_order_key("group", "DESC")])
    assert [r["id"] for r in desc] == [1, 3, 5, 2, 4]


def test_sort_earlier_keys_take_priority():
    rows = [
        {"id": 1, "city": "Rome", "age": 40},
        {"id": 2, "city": "Oslo", "age": 30},
        {"id": 3, "city": "Rome", "age": 20},
    ]
    ordered = sort_records(rows, [make_order_key("city"), make_order_key("age", "desc")])
    assert [r["id"] for r in ordered] == [2, 1, 3]


def test_sort_numbers_numerically_and_none_placement():
    rows = [{"v": 10}, {"v": None}, {"v": 9}, {"v": 100}]
    asc = sort_records(rows, [OrderKey("v")])
    assert [r["v"] for r in asc] == [None, 9, 10, 100]
    desc = sort_records(rows, [make_order_key("v", "DESC")])
    assert [r["v"] for r in desc] == [100, 10, 9, None]


def test_sort_booleans_between_none_and_numbers():
    rows = [{"v": 1}, {"v": True}, {"v": None}, {"v": False}]
    asc = sort_records(rows, [OrderKey("v")])
    assert asc == [{"v": None}, {"v": False}, {"v": True}, {"v": 1}]


def test_sort_does_not_mutate_input():
    rows = [{"v": 2}, {"v": 1}]
    sort_records(rows, [OrderKey("v")])
    assert rows == [{"v": 2}, {"v": 1}]


# ─── Paging / evaluate ──────────────────────────────────────────

@pytest.mark.parametrize("limit,offset,expected", [
    (None, 0, [1, 2, 3, 4, 5]),
    (2, 0, [1, 2]),
    (2, 3, [4, 5]),
    (None, 4, [5]),
    (0, 0, []),
    (3, 10, []),
])
def test_apply_paging(limit, offset, expected):
    rows = [{"id": i} for i in range(1, 6)]
    assert [r["id"] for r in apply_paging(rows, limit, offset)] == expected


def test_filter_records_ands_predicates():
    rows = [{"a": 1, "b": 1}, {"a": 1, "b": 2}, {"a": 2, "b": 2}]
    state = QueryState(predicates=[_p("a", "=", 1), _p("b", "=", 2)])
    assert filter_records(rows, state) == [{"a": 1, "b": 2}]


def test_evaluate_filters_sorts_then_pages():
    rows = [{"id": i, "score": s} for i, s in enumerate([5, 1, 4, 2, 3], 1)]
    state = QueryState(
        predicates=[_p("score", ">", 1)],
        ordering=[make_order_key("score", "DESC")],
        limit=2, offset=1,
    )
    assert [r["score"] for r in evaluate(rows, state)] == [4, 3]
    assert [r["score"] for r in evaluate(rows, state, sort=False)] == [4, 2]
