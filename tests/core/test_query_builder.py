"""Query Builder — verifies fluent accumulation and eager validation.

Tests:
    - where/order/limit/offset/with_deleted return the same builder and accumulate
    - Two-argument where() means equality
    - Operators and directions are case-insensitive; unknown ones raise QueryError
    - Negative or non-integer paging raises QueryError
    - Scope and patch guards used by update()/delete()
    - soft_delete_patch() shape
    - The base builder is abstract; subclasses must supply every terminal call
"""

import re

import pytest

from hoistdb.core.domain_types import Operator, SortDirection
from hoistdb.core.errors import QueryError
from hoistdb.core.query_builder import (
    OrderKey, Predicate, QueryBuilder, check_count, make_order_key, make_predicate,
    soft_delete_patch,
)


class StateOnlyBuilder(QueryBuilder):
    """Concrete builder whose terminal calls read nothing."""

    backend_name = "memory"

    def all(self, limit=None):
        return self._cap([], limit)

    def first(self):
        return None

    def last(self):
        return None

    def count(self):
        return 0

    def insert(self, record):
        self._check_record(record)
        return 1

    def update(self, patch):
        self._require_scope("update")
        self._check_patch(patch)
        return 0

    def delete(self):
        self._require_scope("delete")
        return 0


@pytest.fixture
def builder():
    return StateOnlyBuilder("app", "users")


def test_fluent_calls_return_same_builder(builder):
    result = builder.where("a", "=", 1).order("a").limit(5).offset(2).with_deleted()
    assert result is builder
    assert builder.state.predicates == [Predicate("a", Operator.EQ, 1)]
    assert builder.state.ordering == [OrderKey("a", SortDirection.ASC)]
    assert builder.state.limit == 5
    assert builder.state.offset == 2
    assert builder.state.include_deleted is True


def test_two_argument_where_is_equality(builder):
    builder.where("status", "active")
    assert builder.state.predicates == [Predicate("status", Operator.EQ, "active")]


def test_two_argument_where_with_none(builder):
    builder.where("deleted_at", None)
    assert builder.state.predicates == [Predicate("deleted_at", Operator.EQ, None)]


def test_predicates_accumulate_in_order(builder):
    builder.where("a", ">", 1).where("b", "LIKE", "x")
    assert [p.field for p in builder.state.predicates] == ["a", "b"]


def test_like_is_case_insensitive():
    assert make_predicate("email", "like", "@x").operator is Operator.LIKE
    assert make_predicate("email", " Like ", "@x").operator is Operator.LIKE


@pytest.mark.parametrize("op", ["==", "<>", "IN", "", None])
def test_unknown_operator(op):
    with pytest.raises(QueryError, match="Invalid WHERE operator"):
        make_predicate("a", op, 1)


@pytest.mark.parametrize("name", ["", "   ", None, 5])
def test_empty_field_name(name):
    with pytest.raises(QueryError):
        make_predicate(name, "=", 1)
    with pytest.raises(QueryError):
        make_order_key(name)


def test_direction_is_case_insensitive():
    assert make_order_key("a", "desc").direction is SortDirection.DESC
    assert make_order_key("a", "Asc").direction is SortDirection.ASC


def test_bad_direction():
    with pytest.raises(QueryError, match="ASC"):
        make_order_key("a", "UP")


@pytest.mark.parametrize("bad", [-1, 1.5, "3", True, None])
def test_check_count_rejects(bad):
    with pytest.raises(QueryError):
        check_count(bad, "LIMIT")


def test_limit_and_offset_reject_negative(builder):
    with pytest.raises(QueryError):
        builder.limit(-1)
    with pytest.raises(QueryError):
        builder.offset(-5)


def test_base_builder_cannot_be_instantiated():
    with pytest.raises(TypeError):
        QueryBuilder("app", "users")


def test_subclass_missing_a_terminal_call_cannot_be_instantiated():
    class NoDelete(QueryBuilder):
        all = StateOnlyBuilder.all
        first = StateOnlyBuilder.first
        last = StateOnlyBuilder.last
        count = StateOnlyBuilder.count
        insert = StateOnlyBuilder.insert
        update = StateOnlyBuilder.update

    with pytest.raises(TypeError, match="delete"):
        NoDelete("app", "users")


def test_concrete_builder_guards_writes(builder):
    with pytest.raises(QueryError, match="Insert data cannot be empty"):
        builder.insert({})
    with pytest.raises(QueryError, match="DELETE requires"):
        builder.delete()
    assert builder.where("id", 1).update({"a": 1}) == 0


def test_require_scope(builder):
    with pytest.raises(QueryError, match="UPDATE requires"):
        builder._require_scope("update")
    builder.where("id", 1)
    builder._require_scope("update")


@pytest.mark.parametrize("patch", [{}, None, ["a"], {"id": 2}, {"id": 2, "x": 1}])
def test_check_patch_rejects(builder, patch):
    with pytest.raises(QueryError):
        builder._check_patch(patch)


def test_check_record_rejects_empty(builder):
    with pytest.raises(QueryError, match="empty"):
        builder._check_record({})


def test_cap(builder):
    rows = [{"id": i} for i in range(5)]
    assert builder._cap(rows, None) == rows
    assert builder._cap(rows, 0) == rows
    assert builder._cap(rows, 2) == rows[:2]
    with pytest.raises(QueryError):
        builder._cap(rows, -1)


def test_soft_delete_patch_shape():
    patch = soft_delete_patch()
    assert patch["deleted"] is True
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", patch["deleted_at"])


def test_context_carries_location(builder):
    ctx = builder._context("update", rows=3)
    assert (ctx.namespace, ctx.table, ctx.operation) == ("app", "users", "update")
    assert ctx.debug_info == {"rows": 3}
