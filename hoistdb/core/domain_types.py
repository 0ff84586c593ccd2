"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Records are plain dicts of field name to FieldValue
    - RecordId is an int assigned at insert and never reused
    - All valid operators, directions and backends encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers for identifiers
    - str Enums: serialize to JSON and compare equal to their raw values
"""

import re
from enum import Enum
from typing import Any, NewType, Union

from hoistdb.core.errors import ConfigurationError


# ─── Identity / Value Types ──────────────────────────────────────

RecordId = NewType("RecordId", int)

FieldValue = Union[str, int, float, bool, None, list, dict]
Record = dict[str, Any]

ID_FIELD = "id"
DELETED_FIELD = "deleted"
DELETED_AT_FIELD = "deleted_at"

# Namespaces and tables become path segments and SQL identifiers
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_\-]*$")


# ─── Enums ───────────────────────────────────────────────────────

class Operator(str, Enum):
    """Supported WHERE operators."""
    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    LIKE = "LIKE"


class SortDirection(str, Enum):
    """ORDER BY direction."""
    ASC = "ASC"
    DESC = "DESC"


class BackendKind(str, Enum):
    """Which engine executes queries for this process."""
    DOCUMENT = "filedb"
    RELATIONAL = "relational"


def validate_name(value: object, kind: str) -> str:
    """Namespace/table name check. Raises ConfigurationError."""
    if not isinstance(value, str) or not NAME_PATTERN.match(value.strip()):
        raise ConfigurationError(
            f"{kind.capitalize()} name must match {NAME_PATTERN.pattern}, got {value!r}",
        )
    return value.strip()
