"""Document Table — one named record collection backed by a single JSON file.

Invariants:
    - Layout: <data_directory>/<namespace>/<table>.json holding one JSON array of objects
    - load() on a missing file, missing directory, or empty file returns [] (zero configuration)
    - A malformed existing file raises CorruptTableError for that table only; never discarded
    - insert/update reload the file under the table lock, so concurrent writers never lose rows
    - Ids are max(existing numeric id) + 1; rows are never physically removed, so ids never repeat
    - Soft-deleted rows (truthy `deleted`) are skipped by rows() and update() unless asked for
    - update() writes only when some matched row actually changed

Design Decisions:
    - Whole-file rewrite on every mutation: no partial patches, no index files
    - Readers take no lock: the Write Serializer's atomic replace gives them a consistent file
"""

import json
import logging
import os
from pathlib import Path
from typing import Callable

from hoistdb.core.domain_types import (
    ID_FIELD, BackendKind, Record, RecordId, validate_name,
)
from hoistdb.core.errors import CorruptTableError, ErrorContext, QueryError
from hoistdb.core.query_eval import is_soft_deleted
from hoistdb.core.record_codec import decode_table, encode_table, normalize_record
from hoistdb.infrastructure.document_query import DocumentQuery
from hoistdb.infrastructure.write_serializer import TableWriteSerializer

logger = logging.getLogger(__name__)

TABLE_SUFFIX = ".json"


def next_record_id(records: list[Record]) -> RecordId:
    """One past the highest numeric id present (1 for an empty table)."""
    highest = 0
    for record in records:
        value = record.get(ID_FIELD)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            highest = max(highest, value)
        elif isinstance(value, str) and value.isdigit():
            highest = max(highest, int(value))
    return RecordId(highest + 1)


def _fingerprint(record: Record) -> str:
    return json.dumps(record, sort_keys=True, ensure_ascii=False)


class DocumentTable:
    """Loads and persists the full record set of one table."""

    def __init__(self, directory: Path, namespace: str, name: str, lock_timeout: float):
        self.namespace = namespace
        self.name = validate_name(name, "table")
        self.path = Path(directory) / f"{self.name}{TABLE_SUFFIX}"
        self.context = ErrorContext(
            namespace=namespace, table=self.name, backend=BackendKind.DOCUMENT.value,
        )
        self._serializer = TableWriteSerializer(self.path, lock_timeout, self.context)

    def _log_extra(self, operation: str, **fields) -> dict:
        return {
            "namespace": self.namespace, "table": self.name,
            "backend": BackendKind.DOCUMENT.value, "operation": operation, **fields,
        }

    # ─── Reads ───────────────────────────────────────────────────

    def load(self) -> list[Record]:
        """Every record, soft-deleted included, in file order."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.error(
                f"Unable to read table file {self.path}: {e}",
                extra=self._log_extra("load", error_code="CORRUPT_TABLE"),
            )
            raise CorruptTableError(self.name, f"unreadable ({e})", self.context) from e
        try:
            return decode_table(raw, self.name)
        except CorruptTableError as e:
            e.context = self.context
            logger.error(e.message, extra=self._log_extra("load", error_code=e.code))
            raise

    def rows(self, include_deleted: bool = False) -> list[Record]:
        records = self.load()
        if include_deleted:
            return records
        return [record for record in records if not is_soft_deleted(record)]

    # ─── Writes ──────────────────────────────────────────────────

    def insert(self, record: Record) -> RecordId:
        """Append one record and return its id."""
        record = normalize_record(record)
        supplied = record.get(ID_FIELD)
        with self._serializer.locked():
            records = self.load()
            if supplied is None:
                record_id = next_record_id(records)
                record = {ID_FIELD: record_id, **{
                    key: value for key, value in record.items() if key != ID_FIELD
                }}
            else:
                if any(existing.get(ID_FIELD) == supplied for existing in records):
                    raise QueryError(
                        f"Record id {supplied!r} already exists in table '{self.name}'",
                        self.context,
                    )
                record_id = supplied
            records.append(record)
            self._serializer.write(encode_table(records))
        logger.debug(
            f"Inserted into {self.name}",
            extra=self._log_extra("insert", record_id=record_id),
        )
        return record_id

    def update(
        self,
        predicate: Callable[[Record], bool],
        patch: Record,
        include_deleted: bool = False,
    ) -> int:
        """Shallow-merge `patch` into every matching record. Returns the match count."""
        patch = normalize_record(patch)
        with self._serializer.locked():
            records = self.load()
            matched = 0
            changed = False
            for position, record in enumerate(records):
                if not include_deleted and is_soft_deleted(record):
                    continue
                if not predicate(record):
                    continue
                matched += 1
                merged = {**record, **patch}
                if _fingerprint(merged) != _fingerprint(record):
                    records[position] = merged
                    changed = True
            if changed:
                self._serializer.write(encode_table(records))
        logger.debug(
            f"Updated {matched} record(s) in {self.name}",
            extra=self._log_extra("update", affected=matched),
        )
        return matched


class DocumentStore:
    """All document tables of one namespace."""

    def __init__(self, namespace: str, data_directory: Path | str, lock_timeout: float = 10.0):
        self.namespace = validate_name(namespace, "namespace")
        self.directory = Path(data_directory) / self.namespace
        self.lock_timeout = lock_timeout

    def open(self, name: str) -> DocumentTable:
        return DocumentTable(self.directory, self.namespace, name, self.lock_timeout)

    def table(self, name: str) -> DocumentQuery:
        """Fresh query builder over `name`."""
        return DocumentQuery(self.open(name))

    def table_names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(path.stem for path in self.directory.glob(f"*{TABLE_SUFFIX}"))

    def health_check(self) -> bool:
        """True when the namespace directory exists (or can be created) and is writable."""
        target = self.directory
        while not target.exists():
            if target.parent == target:
                return False
            target = target.parent
        return target.is_dir() and os.access(target, os.W_OK)
