"""Relational Query — the Query Builder surface compiled to SQLAlchemy Core statements.

Invariants:
    - Same call signatures and result shapes as DocumentQuery; records are plain dicts
    - Every write goes through the Record Codec (list/dict -> JSON text, bool -> 1/0) and every
      read is decoded by column kind, so values round-trip like the document backend
    - A missing table reads as empty, updates as 0, and is created on first insert
    - Fields never seen before are added as nullable columns before the write; a field first
      seen as None gets a JSON column
    - A value that does not fit its existing column raises TypeCoercionError before any DDL
    - Ordering always ends with id ASC so ties keep insertion order
    - A where() on a column the table lacks behaves as if every row held None there
    - Soft-deleted rows are excluded when the table has a `deleted` column
    - LIKE is case-sensitive substring containment on every supported dialect

Design Decisions:
    - Tables are reflected on each terminal call: no schema cache to invalidate
    - JSON and boolean columns are bound as Text/Integer so encoded values pass through
      untouched and the codec stays the single place that translates types
"""

import logging
from typing import Any

from sqlalchemy import (
    JSON, Boolean, Column, Float, Integer, LargeBinary, MetaData, String, Table, Text,
    cast, false, func, insert, inspect, literal, or_, select, true, update,
)
from sqlalchemy.engine import Connection
from sqlalchemy.sql import sqltypes
from sqlalchemy.sql.elements import ColumnElement

from hoistdb.core.domain_types import (
    DELETED_FIELD, ID_FIELD, BackendKind, Operator, Record, RecordId, SortDirection,
    validate_name,
)
from hoistdb.core.errors import TypeCoercionError
from hoistdb.core.query_builder import Predicate, QueryBuilder, check_count, soft_delete_patch
from hoistdb.core.query_eval import text_form
from hoistdb.core.record_codec import (
    ColumnKind, check_row, decode_row, encode_for_column, encode_row, encode_value,
    infer_column_kind, normalize_record,
)
from hoistdb.infrastructure.database import DatabaseEngineManager

logger = logging.getLogger(__name__)

CREATE_TYPES = {
    ColumnKind.INTEGER: Integer,
    ColumnKind.FLOAT: Float,
    ColumnKind.TEXT: Text,
    ColumnKind.BOOLEAN: Boolean,
    ColumnKind.JSON: JSON,
}


# ─── Schema helpers ─────────────────────────────────────────────

def column_kind(column: Column) -> ColumnKind:
    """Storage kind of a reflected column."""
    col_type = column.type
    if isinstance(col_type, sqltypes.JSON):
        return ColumnKind.JSON
    if isinstance(col_type, sqltypes.Boolean):
        return ColumnKind.BOOLEAN
    # MySQL reflects BOOLEAN as TINYINT(1)
    if type(col_type).__name__ == "TINYINT" and getattr(col_type, "display_width", None) == 1:
        return ColumnKind.BOOLEAN
    if isinstance(col_type, sqltypes.Integer):
        return ColumnKind.INTEGER
    if isinstance(col_type, (sqltypes.Float, sqltypes.Numeric)):
        return ColumnKind.FLOAT
    return ColumnKind.TEXT


def reflect_table(conn: Connection, name: str) -> Table | None:
    if not inspect(conn).has_table(name):
        return None
    return Table(name, MetaData(), autoload_with=conn)


def bind_table(reflected: Table) -> tuple[Table, dict[str, ColumnKind]]:
    """Copy of `reflected` whose JSON/boolean columns bind pre-encoded values verbatim."""
    kinds: dict[str, ColumnKind] = {}
    columns = []
    for col in reflected.columns:
        kind = column_kind(col)
        kinds[col.name] = kind
        if kind is ColumnKind.JSON:
            bind_type = Text()
        elif kind is ColumnKind.BOOLEAN:
            bind_type = Integer()
        else:
            bind_type = col.type
        columns.append(Column(
            col.name, bind_type,
            primary_key=col.primary_key,
            autoincrement=col.primary_key and kind is ColumnKind.INTEGER,
        ))
    return Table(reflected.name, MetaData(), *columns), kinds


def reflected_kinds(reflected: Table) -> dict[str, ColumnKind]:
    return {col.name: column_kind(col) for col in reflected.columns}


def create_table(conn: Connection, name: str, record: Record) -> Table:
    """Create `name` with columns inferred from the first record written to it."""
    columns = [Column(ID_FIELD, Integer, primary_key=True, autoincrement=True)]
    for key, value in record.items():
        if key == ID_FIELD:
            continue
        columns.append(Column(key, CREATE_TYPES[infer_column_kind(value)], nullable=True))
    table = Table(name, MetaData(), *columns)
    table.create(conn, checkfirst=True)
    logger.info(f"Created table {name}", extra={"table": name, "operation": "create_table"})
    return reflect_table(conn, name)


def add_missing_columns(conn: Connection, table: Table, record: Record) -> Table:
    """ALTER TABLE ADD COLUMN for every field `table` does not have yet."""
    missing = [key for key in record if key not in table.c]
    if not missing:
        return table
    preparer = conn.dialect.identifier_preparer
    for key in missing:
        sql_type = CREATE_TYPES[infer_column_kind(record[key])]().compile(dialect=conn.dialect)
        conn.exec_driver_sql(
            f"ALTER TABLE {preparer.quote(table.name)} "
            f"ADD COLUMN {preparer.quote(key)} {sql_type}"
        )
    logger.info(
        f"Added column(s) {missing} to {table.name}",
        extra={"table": table.name, "operation": "add_column"},
    )
    return reflect_table(conn, table.name)


# ─── Predicate compilation ──────────────────────────────────────

def contains_condition(column: ColumnElement, needle: str, dialect: str) -> ColumnElement:
    """Case-sensitive substring test."""
    if dialect == "sqlite":
        return func.instr(column, needle) > 0
    if dialect == "postgresql":
        return func.strpos(cast(column, Text), needle) > 0
    if dialect in ("mysql", "mariadb"):
        return func.instr(cast(column, LargeBinary), cast(literal(needle), LargeBinary)) > 0
    return cast(column, String).contains(needle, autoescape=True)


def predicate_condition(
    table: Table, kinds: dict[str, ColumnKind], predicate: Predicate, dialect: str,
) -> ColumnElement:
    op = predicate.operator
    value = predicate.value
    if predicate.field not in table.c:
        # Absent column: every row holds None
        if op is Operator.EQ:
            return true() if value is None else false()
        if op is Operator.NE:
            return false() if value is None else true()
        return false()

    column = table.c[predicate.field]
    if op is Operator.LIKE:
        if value is None:
            return false()
        return contains_condition(column, text_form(value), dialect)
    if value is None:
        if op is Operator.EQ:
            return column.is_(None)
        if op is Operator.NE:
            return column.is_not(None)
        return false()

    # JSON columns store every value as JSON text, so compare against that form
    if kinds.get(predicate.field) is ColumnKind.JSON:
        bound = encode_for_column(value, ColumnKind.JSON, predicate.field)
    else:
        bound = encode_value(value, predicate.field)
    if op is Operator.EQ:
        return column == bound
    if op is Operator.NE:
        return or_(column != bound, column.is_(None))
    if op is Operator.GT:
        return column > bound
    if op is Operator.GE:
        return column >= bound
    if op is Operator.LT:
        return column < bound
    return column <= bound


def not_deleted_condition(table: Table, kinds: dict[str, ColumnKind]) -> ColumnElement | None:
    if DELETED_FIELD not in table.c:
        return None
    column = table.c[DELETED_FIELD]
    kind = kinds.get(DELETED_FIELD)
    if kind is ColumnKind.TEXT:
        return or_(column.is_(None), column == "", column == "0")
    if kind is ColumnKind.JSON:
        return or_(column.is_(None), column.in_(["false", "0", "null", '""']))
    return or_(column.is_(None), column == 0)


# ─── Builder ────────────────────────────────────────────────────

class RelationalQuery(QueryBuilder):
    """Query Builder over one relational table."""

    backend_name = BackendKind.RELATIONAL.value

    def __init__(self, manager: DatabaseEngineManager, namespace: str, table: str):
        super().__init__(namespace, validate_name(table, "table"))
        self._manager = manager

    def _log_extra(self, operation: str, **fields: Any) -> dict:
        return {
            "namespace": self.namespace, "table": self.table,
            "backend": self.backend_name, "operation": operation, **fields,
        }

    def _conditions(
        self, table: Table, kinds: dict[str, ColumnKind], include_deleted: bool,
    ) -> list[ColumnElement]:
        dialect = self._manager.dialect_name
        conditions = [
            predicate_condition(table, kinds, p, dialect) for p in self.state.predicates
        ]
        if not include_deleted:
            live = not_deleted_condition(table, kinds)
            if live is not None:
                conditions.append(live)
        return conditions

    def _select(
        self, table: Table, kinds: dict[str, ColumnKind], limit: int | None, sort: bool = True,
    ):
        stmt = select(table).where(
            *self._conditions(table, kinds, self.state.include_deleted),
        )
        if sort:
            postgres = self._manager.dialect_name == "postgresql"
            for key in self.state.ordering:
                if key.field not in table.c:
                    continue
                column = table.c[key.field]
                if key.direction is SortDirection.DESC:
                    clause = column.desc().nulls_last() if postgres else column.desc()
                else:
                    clause = column.asc().nulls_first() if postgres else column.asc()
                stmt = stmt.order_by(clause)
            if ID_FIELD in table.c:
                stmt = stmt.order_by(table.c[ID_FIELD].asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if self.state.offset:
            stmt = stmt.offset(self.state.offset)
        return stmt

    def _effective_limit(self, cap: int | None) -> int | None:
        limits = [n for n in (self.state.limit, cap) if n is not None]
        return min(limits) if limits else None

    def _check_kinds(self, reflected: Table, record: Record, operation: str) -> None:
        try:
            check_row(record, reflected_kinds(reflected))
        except TypeCoercionError as e:
            e.context = self._context(operation, field=e.field)
            logger.error(e.message, extra=self._log_extra(operation, error_code=e.code))
            raise

    def _fetch(self, operation: str, cap: int | None = None) -> list[Record]:
        with self._manager.connection(operation, self._context(operation)) as conn:
            reflected = reflect_table(conn, self.table)
            if reflected is None:
                return []
            table, kinds = bind_table(reflected)
            stmt = self._select(table, kinds, self._effective_limit(cap))
            rows = conn.execute(stmt).mappings().all()
        return [decode_row(dict(row), kinds) for row in rows]

    # ─── Terminal calls ──────────────────────────────────────────

    def all(self, limit: int | None = None) -> list[Record]:
        # all(0) means uncapped, matching all(None)
        if limit is None or check_count(limit, "all() limit") == 0:
            return self._fetch("all")
        return self._fetch("all", limit)

    def first(self) -> Record | None:
        rows = self._fetch("first", 1)
        return rows[0] if rows else None

    def last(self) -> Record | None:
        rows = self._fetch("last")
        return rows[-1] if rows else None

    def count(self) -> int:
        with self._manager.connection("count", self._context("count")) as conn:
            reflected = reflect_table(conn, self.table)
            if reflected is None:
                return 0
            table, kinds = bind_table(reflected)
            inner = self._select(table, kinds, self.state.limit, sort=False).subquery()
            return conn.execute(select(func.count()).select_from(inner)).scalar_one()

    def insert(self, record: Record) -> RecordId:
        self._check_record(record)
        record = normalize_record(record)
        with self._manager.connection("insert", self._context("insert")) as conn:
            reflected = reflect_table(conn, self.table)
            if reflected is None:
                reflected = create_table(conn, self.table, record)
            self._check_kinds(reflected, record, "insert")
            reflected = add_missing_columns(conn, reflected, record)
            table, kinds = bind_table(reflected)
            values = encode_row(record, kinds)
            if values.get(ID_FIELD) is None:
                values.pop(ID_FIELD, None)
            result = conn.execute(insert(table).values(values))
            record_id = record.get(ID_FIELD)
            if record_id is None and result.inserted_primary_key:
                record_id = result.inserted_primary_key[0]
        logger.debug(
            f"Inserted into {self.table}", extra=self._log_extra("insert", record_id=record_id),
        )
        return RecordId(record_id)

    def _apply(self, operation: str, patch: Record, include_deleted: bool) -> int:
        patch = normalize_record(patch)
        with self._manager.connection(operation, self._context(operation)) as conn:
            reflected = reflect_table(conn, self.table)
            if reflected is None:
                return 0
            self._check_kinds(reflected, patch, operation)
            reflected = add_missing_columns(conn, reflected, patch)
            table, kinds = bind_table(reflected)
            stmt = (
                update(table)
                .where(*self._conditions(table, kinds, include_deleted))
                .values(encode_row(patch, kinds))
            )
            affected = conn.execute(stmt).rowcount
        logger.debug(
            f"{operation.capitalize()} touched {affected} record(s) in {self.table}",
            extra=self._log_extra(operation, affected=affected),
        )
        return affected

    def update(self, patch: Record) -> int:
        """Apply `patch` to every row matching the where() clauses."""
        self._require_scope("update")
        self._check_patch(patch)
        return self._apply("update", patch, self.state.include_deleted)

    def delete(self) -> int:
        """Soft-delete matching rows."""
        self._require_scope("delete")
        affected = self._apply("delete", soft_delete_patch(), include_deleted=False)
        logger.info(
            f"Soft-deleted {affected} record(s) from {self.table}",
            extra=self._log_extra("delete", affected=affected),
        )
        return affected


class RelationalStore:
    """All relational tables reachable through one engine manager."""

    def __init__(self, namespace: str, manager: DatabaseEngineManager):
        self.namespace = validate_name(namespace, "namespace")
        self.manager = manager

    def table(self, name: str) -> RelationalQuery:
        return RelationalQuery(self.manager, self.namespace, name)

    def table_names(self) -> list[str]:
        with self.manager.connection("table_names") as conn:
            return sorted(inspect(conn).get_table_names())

    def health_check(self) -> bool:
        return self.manager.health_check()
