"""Query Builder — fluent accumulation of predicates, ordering and paging over one table.

Invariants:
    - where/order/limit/offset/with_deleted append to state and return the same builder
    - Terminal calls (first/last/all/count/update/delete) never reset accumulated state
    - Invalid operators, directions, field names and paging values raise QueryError
      at the call that introduced them, not at evaluation
    - update() and delete() require at least one where(); update() never touches id

Design Decisions:
    - One base class for both engines: validation lives here once, engines only
      implement the terminal calls
    - Abstract base: a builder missing a terminal call fails at construction
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from hoistdb.core.domain_types import (
    DELETED_AT_FIELD, DELETED_FIELD, ID_FIELD, Operator, Record, RecordId, SortDirection,
)
from hoistdb.core.errors import ErrorContext, QueryError

_UNSET = object()


@dataclass(frozen=True)
class Predicate:
    field: str
    operator: Operator
    value: Any


@dataclass(frozen=True)
class OrderKey:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass
class QueryState:
    """Everything a terminal call needs to evaluate a query."""
    predicates: list[Predicate] = field(default_factory=list)
    ordering: list[OrderKey] = field(default_factory=list)
    limit: int | None = None
    offset: int = 0
    include_deleted: bool = False


def _clean_field(name: Any, clause: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise QueryError(f"{clause} field name must be a non-empty string, got {name!r}")
    return name.strip()


def make_predicate(field_name: Any, operator: Any, value: Any) -> Predicate:
    name = _clean_field(field_name, "WHERE")
    raw = operator.strip().upper() if isinstance(operator, str) else operator
    try:
        op = Operator(raw)
    except ValueError:
        supported = ", ".join(o.value for o in Operator)
        raise QueryError(
            f"Invalid WHERE operator {operator!r}. Supported operators: {supported}",
        ) from None
    return Predicate(name, op, value)


def make_order_key(field_name: Any, direction: Any = "ASC") -> OrderKey:
    name = _clean_field(field_name, "ORDER BY")
    raw = direction.strip().upper() if isinstance(direction, str) else direction
    try:
        return OrderKey(name, SortDirection(raw))
    except ValueError:
        raise QueryError(
            f"Invalid ORDER BY direction {direction!r}. Use 'ASC' or 'DESC'.",
        ) from None


def check_count(value: Any, clause: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryError(f"{clause} must be a non-negative integer, got {value!r}")
    return value


def soft_delete_patch() -> Record:
    """Marker fields written by delete()."""
    return {
        DELETED_FIELD: True,
        DELETED_AT_FIELD: datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
    }


class QueryBuilder(ABC):
    """Shared fluent surface. Engines subclass and implement the terminal calls."""

    backend_name = "abstract"

    def __init__(self, namespace: str, table: str):
        self.namespace = namespace
        self.table = table
        self.state = QueryState()

    # ─── Accumulation ────────────────────────────────────────────

    def where(self, field_name: str, operator: Any, value: Any = _UNSET) -> "QueryBuilder":
        """Add a predicate. where(field, value) means equality."""
        if value is _UNSET:
            operator, value = Operator.EQ, operator
        self.state.predicates.append(make_predicate(field_name, operator, value))
        return self

    def order(self, field_name: str, direction: str = "ASC") -> "QueryBuilder":
        self.state.ordering.append(make_order_key(field_name, direction))
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self.state.limit = check_count(count, "LIMIT")
        return self

    def offset(self, count: int) -> "QueryBuilder":
        self.state.offset = check_count(count, "OFFSET")
        return self

    def with_deleted(self) -> "QueryBuilder":
        """Include soft-deleted records in every later terminal call."""
        self.state.include_deleted = True
        return self

    # ─── Terminal calls ──────────────────────────────────────────

    @abstractmethod
    def all(self, limit: int | None = None) -> list[Record]:
        ...

    @abstractmethod
    def first(self) -> Record | None:
        ...

    @abstractmethod
    def last(self) -> Record | None:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def insert(self, record: Record) -> RecordId:
        ...

    @abstractmethod
    def update(self, patch: Record) -> int:
        ...

    @abstractmethod
    def delete(self) -> int:
        ...

    # ─── Helpers for engines ─────────────────────────────────────

    def _context(self, operation: str, **debug_info: Any) -> ErrorContext:
        return ErrorContext(
            namespace=self.namespace, table=self.table,
            backend=self.backend_name, operation=operation,
            debug_info=debug_info or None,
        )

    def _require_scope(self, operation: str) -> None:
        if not self.state.predicates:
            raise QueryError(
                f"{operation.upper()} requires at least one where() clause "
                "to prevent accidental mass changes.",
                self._context(operation),
            )

    def _check_record(self, record: Record) -> None:
        if isinstance(record, dict) and not record:
            raise QueryError("Insert data cannot be empty.", self._context("insert"))

    def _check_patch(self, patch: Record) -> None:
        if not isinstance(patch, dict) or not patch:
            raise QueryError(
                "Update data must be a non-empty mapping of field => value.",
                self._context("update"),
            )
        if ID_FIELD in patch:
            raise QueryError(
                'Cannot update the "id" field. Record ids are immutable.',
                self._context("update"),
            )

    def _cap(self, records: list[Record], limit: int | None) -> list[Record]:
        # all(0) means uncapped, matching all(None)
        if limit is None or check_count(limit, "all() limit") == 0:
            return records
        return records[:limit]
