"""Boundary Protocols — the query surface every collaborator codes against.

Invariants:
    - Model, controller, view and cache layers depend on TableQuery only, never on an engine
    - Both engines (document files, relational) satisfy TableQuery structurally

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance required of test fakes
"""

from typing import Any, Protocol

from hoistdb.core.domain_types import Record, RecordId


class TableQuery(Protocol):
    """Fluent query over one table."""
    def where(self, field_name: str, operator: Any, value: Any = ...) -> "TableQuery": ...
    def order(self, field_name: str, direction: str = "ASC") -> "TableQuery": ...
    def limit(self, count: int) -> "TableQuery": ...
    def offset(self, count: int) -> "TableQuery": ...
    def with_deleted(self) -> "TableQuery": ...
    def all(self, limit: int | None = None) -> list[Record]: ...
    def first(self) -> Record | None: ...
    def last(self) -> Record | None: ...
    def count(self) -> int: ...
    def insert(self, record: Record) -> RecordId: ...
    def update(self, patch: Record) -> int: ...
    def delete(self) -> int: ...


class TableSource(Protocol):
    """One engine's tables: what DatabaseAdapter routes to."""
    def table(self, name: str) -> TableQuery: ...
    def table_names(self) -> list[str]: ...
    def health_check(self) -> bool: ...
