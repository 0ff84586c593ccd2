"""Record Codec — translates field values to and from each backend's representation.

Invariants:
    - All functions are PURE: no IO, no DB
    - Accepted values: str, int, float (finite), bool, None, list/tuple, dict with str keys
    - Anything else raises TypeCoercionError naming the offending field
    - Document encoding is JSON; composite values and booleans need no translation there
    - Relational encoding: list/dict -> compact JSON text, bool -> 1/0, None -> NULL
    - decode(encode(v)) == v for every accepted value, given the column kind chosen at write time
    - A value whose kind does not fit its existing column raises TypeCoercionError; the only
      widening allowed is an integer into a FLOAT column

Design Decisions:
    - ColumnKind travels with the relational column type, so reads know which columns
      hold JSON text and which hold boolean integers
    - A field first seen as None gets a JSON column: JSON text holds any later value exactly
"""

import datetime as dt
import json
import math
from decimal import Decimal
from enum import Enum
from typing import Any

from hoistdb.core.domain_types import Record
from hoistdb.core.errors import CorruptTableError, TypeCoercionError


class ColumnKind(str, Enum):
    """Storage shape of one relational column."""
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BOOLEAN = "boolean"
    JSON = "json"


# ─── Validation ─────────────────────────────────────────────────

def normalize_value(value: Any, field: str) -> Any:
    """Validate one value recursively. Tuples become lists."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeCoercionError(f"Field '{field}' holds a non-finite float", field)
        return value
    if isinstance(value, (list, tuple)):
        return [normalize_value(item, field) for item in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeCoercionError(
                    f"Field '{field}' holds a mapping with non-string key {key!r}", field,
                )
            out[key] = normalize_value(item, field)
        return out
    raise TypeCoercionError(
        f"Field '{field}' holds unsupported type {type(value).__name__}", field,
    )


def normalize_record(record: Record) -> Record:
    """Validate a whole record; field order is preserved."""
    if not isinstance(record, dict):
        raise TypeCoercionError(
            f"Record must be a mapping, got {type(record).__name__}",
        )
    out = {}
    for key, value in record.items():
        if not isinstance(key, str) or not key:
            raise TypeCoercionError(f"Field names must be non-empty strings, got {key!r}")
        out[key] = normalize_value(value, key)
    return out


# ─── Document (JSON file) Encoding ──────────────────────────────

def encode_table(records: list[Record]) -> str:
    """Serialize a full record sequence for a table file."""
    try:
        return json.dumps(records, indent=4, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise TypeCoercionError(f"Records are not JSON-representable: {e}") from e


def decode_table(raw: str, table: str) -> list[Record]:
    """Parse a table file. Empty content is an empty table."""
    if not raw.strip():
        return []
    try:
        records = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptTableError(table, f"invalid JSON ({e.msg} at line {e.lineno})") from e
    if not isinstance(records, list):
        raise CorruptTableError(
            table, f"expected an array of records, found {type(records).__name__}",
        )
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise CorruptTableError(
                table, f"entry {position} is {type(record).__name__}, not an object",
            )
    return records


# ─── Relational Encoding ────────────────────────────────────────

def infer_column_kind(value: Any) -> ColumnKind:
    """Column kind for a field first seen holding `value`."""
    if isinstance(value, bool):
        return ColumnKind.BOOLEAN
    if isinstance(value, int):
        return ColumnKind.INTEGER
    if isinstance(value, float):
        return ColumnKind.FLOAT
    if isinstance(value, str):
        return ColumnKind.TEXT
    return ColumnKind.JSON


def encode_value(value: Any, field: str) -> Any:
    """Encode one validated value for a relational bind parameter."""
    value = normalize_value(value, field)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return value


def check_column_value(value: Any, kind: ColumnKind, field: str) -> None:
    """Raise TypeCoercionError when `value` cannot be stored in a `kind` column."""
    if value is None or kind is ColumnKind.JSON:
        return
    actual = infer_column_kind(value)
    if actual is kind or (actual is ColumnKind.INTEGER and kind is ColumnKind.FLOAT):
        return
    raise TypeCoercionError(
        f"Field '{field}' holds a {actual.value} value but its column stores {kind.value}",
        field,
    )


def encode_for_column(value: Any, kind: ColumnKind, field: str) -> Any:
    """Encode one value for an existing column of `kind`."""
    value = normalize_value(value, field)
    check_column_value(value, kind, field)
    if kind is ColumnKind.JSON and value is not None:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return encode_value(value, field)


def encode_row(record: Record, kinds: dict[str, ColumnKind]) -> Record:
    """Encode a record against its table's column kinds. Unknown fields use the inferred kind."""
    return {
        key: encode_for_column(value, kinds.get(key) or infer_column_kind(value), key)
        for key, value in normalize_record(record).items()
    }


def check_row(record: Record, kinds: dict[str, ColumnKind]) -> None:
    """Validate every field that already has a column. Call before altering the table."""
    for key, value in record.items():
        if key in kinds:
            check_column_value(value, kinds[key], key)


def decode_value(value: Any, kind: ColumnKind, field: str) -> Any:
    """Decode one relational column value according to its kind."""
    if value is None:
        return None
    if kind is ColumnKind.BOOLEAN:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "t", "yes")
        return bool(value)
    if kind is ColumnKind.JSON:
        if isinstance(value, (list, dict, int, float)):
            # SQLite stores JSON-typed numeric text as a number
            return value
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError) as e:
            raise TypeCoercionError(
                f"Column '{field}' does not hold valid JSON", field,
            ) from e
    # Columns created outside this library may hold driver-native scalars
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def decode_row(row: dict[str, Any], kinds: dict[str, ColumnKind]) -> Record:
    return {
        key: decode_value(value, kinds.get(key, ColumnKind.TEXT), key)
        for key, value in row.items()
    }
