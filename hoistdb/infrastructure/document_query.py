"""Document Query — terminal calls of the Query Builder evaluated against a Document Table.

Invariants:
    - Every terminal call reloads the table: no cached rows survive between calls
    - Evaluation is a full linear scan (no index), then a stable composite sort, then paging
    - first()/last() return None and all() returns [] when nothing matches
    - count() skips sorting but filters and pages exactly like all()
    - update()/delete() match on where() predicates only; order and paging do not narrow them
"""

import logging
from typing import TYPE_CHECKING

from hoistdb.core.domain_types import BackendKind, Record, RecordId
from hoistdb.core.query_builder import QueryBuilder, soft_delete_patch
from hoistdb.core.query_eval import evaluate, matches_all

if TYPE_CHECKING:
    from hoistdb.infrastructure.document_table import DocumentTable

logger = logging.getLogger(__name__)


class DocumentQuery(QueryBuilder):
    """Query Builder over one JSON-file table."""

    backend_name = BackendKind.DOCUMENT.value

    def __init__(self, table: "DocumentTable"):
        super().__init__(table.namespace, table.name)
        self._table = table

    def _matching(self, sort: bool = True) -> list[Record]:
        rows = self._table.rows(include_deleted=self.state.include_deleted)
        return evaluate(rows, self.state, sort=sort)

    def _matcher(self):
        predicates = list(self.state.predicates)
        return lambda record: matches_all(record, predicates)

    def all(self, limit: int | None = None) -> list[Record]:
        return self._cap(self._matching(), limit)

    def first(self) -> Record | None:
        rows = self._matching()
        return rows[0] if rows else None

    def last(self) -> Record | None:
        rows = self._matching()
        return rows[-1] if rows else None

    def count(self) -> int:
        return len(self._matching(sort=False))

    def insert(self, record: Record) -> RecordId:
        self._check_record(record)
        return self._table.insert(record)

    def update(self, patch: Record) -> int:
        """Apply `patch` to every record matching the where() clauses."""
        self._require_scope("update")
        self._check_patch(patch)
        return self._table.update(
            self._matcher(), patch, include_deleted=self.state.include_deleted,
        )

    def delete(self) -> int:
        """Soft-delete matching records; they stay in the file with `deleted` set."""
        self._require_scope("delete")
        affected = self._table.update(self._matcher(), soft_delete_patch())
        logger.info(
            f"Soft-deleted {affected} record(s) from {self.table}",
            extra={
                "namespace": self.namespace, "table": self.table,
                "backend": self.backend_name, "operation": "delete", "affected": affected,
            },
        )
        return affected
