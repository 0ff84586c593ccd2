"""Query Evaluation — pure filter, sort and paging over in-memory records.

Invariants:
    - All functions are PURE: no IO, input lists are never mutated
    - Predicates are ANDed; a missing field behaves as None
    - >, >=, <, <= never match when either side is None, even None against None
    - Numbers compare numerically (a numeric string against a number too), strings lexically
    - Booleans only compare with booleans: True never equals 1
    - Lists and dicts support only = and !=
    - LIKE is case-sensitive substring containment on the value's stored text form
    - Sorting is stable: ties keep their prior relative order in both directions
    - None sorts first ascending, last descending

Design Decisions:
    - Composite sort applies keys from lowest to highest priority, relying on sort stability
    - Text form for LIKE matches the relational encoding (bool -> "1"/"0", containers -> compact JSON)
"""

import json
import math
from typing import Any, Iterable

from hoistdb.core.domain_types import DELETED_FIELD, Operator, Record, SortDirection
from hoistdb.core.query_builder import OrderKey, Predicate, QueryState


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> float | int | None:
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_values(actual: Any, expected: Any) -> int | None:
    """Three-way compare. None means the pair is not comparable."""
    if actual is None or expected is None:
        return 0 if actual is None and expected is None else None
    if isinstance(actual, bool) or isinstance(expected, bool):
        if isinstance(actual, bool) and isinstance(expected, bool):
            return _cmp(actual, expected)
        return None
    if _is_number(actual) or _is_number(expected):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return None
        return _cmp(left, right)
    if isinstance(actual, str) and isinstance(expected, str):
        return _cmp(actual, expected)
    if isinstance(actual, (list, dict)) or isinstance(expected, (list, dict)):
        return 0 if actual == expected else None
    return None


def text_form(value: Any) -> str:
    """String a LIKE predicate searches in."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def matches(record: Record, predicate: Predicate) -> bool:
    actual = record.get(predicate.field)
    if predicate.operator is Operator.LIKE:
        if actual is None or predicate.value is None:
            return False
        return text_form(predicate.value) in text_form(actual)

    order = compare_values(actual, predicate.value)
    if predicate.operator is Operator.EQ:
        return order == 0
    if predicate.operator is Operator.NE:
        return order != 0
    # Only = and != give None a meaning
    if order is None or actual is None or predicate.value is None:
        return False
    if predicate.operator is Operator.GT:
        return order > 0
    if predicate.operator is Operator.GE:
        return order >= 0
    if predicate.operator is Operator.LT:
        return order < 0
    return order <= 0


def matches_all(record: Record, predicates: Iterable[Predicate]) -> bool:
    return all(matches(record, predicate) for predicate in predicates)


def is_soft_deleted(record: Record) -> bool:
    return bool(record.get(DELETED_FIELD))


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if _is_number(value):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    return (4, json.dumps(value, sort_keys=True))


def sort_records(records: list[Record], ordering: list[OrderKey]) -> list[Record]:
    """Composite stable sort; earlier keys take priority."""
    ordered = list(records)
    for key in reversed(ordering):
        ordered.sort(
            key=lambda record, name=key.field: _sort_key(record.get(name)),
            reverse=key.direction is SortDirection.DESC,
        )
    return ordered


def apply_paging(records: list[Record], limit: int | None, offset: int) -> list[Record]:
    if offset:
        records = records[offset:]
    if limit is not None:
        records = records[:limit]
    return records


def filter_records(records: Iterable[Record], state: QueryState) -> list[Record]:
    """Linear scan applying every predicate."""
    return [record for record in records if matches_all(record, state.predicates)]


def evaluate(records: Iterable[Record], state: QueryState, sort: bool = True) -> list[Record]:
    """Filter, sort, then page. count() passes sort=False."""
    result = filter_records(records, state)
    if sort and state.ordering:
        result = sort_records(result, state.ordering)
    return apply_paging(result, state.limit, state.offset)
