"""Error Hierarchy — typed, categorized exceptions for every storage failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Both backends raise the same kinds: callers never branch on the active backend
    - to_dict() produces the structured payload used by the JSON log formatter
    - "No rows match" is never an error

Design Decisions:
    - Single hierarchy with StoreError base: one except clause catches every storage failure
    - ErrorContext as dataclass: namespace/table/backend travel with the error, not the logger
    - No retries and no HTTP mapping here: both belong to the caller
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    STORAGE = "storage"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    CODEC = "codec"


@dataclass
class ErrorContext:
    """Where the failure happened."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    namespace: str | None = None
    table: str | None = None
    backend: str | None = None
    operation: str | None = None
    debug_info: dict[str, Any] | None = None


class StoreError(Exception):
    """Base exception for all hoistdb errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        """Convert to a flat, JSON-serializable payload."""
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "namespace": self.context.namespace,
            "table": self.context.table,
            "backend": self.context.backend,
            "operation": self.context.operation,
        }


# ─── Caller Errors ──────────────────────────────────────────────

class ConfigurationError(StoreError):
    """Namespace, table name or backend settings are missing or invalid."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context,
        )


class QueryError(StoreError):
    """Malformed query: bad operator, direction, field, or an unscoped mutation."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "QUERY_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context,
        )


class TypeCoercionError(StoreError):
    """Value cannot be represented in the target backend's encoding."""
    def __init__(
        self, message: str, field: str | None = None, context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "TYPE_COERCION_ERROR", ErrorCategory.CODEC,
            ErrorSeverity.ERROR, context,
        )
        self.field = field


# ─── Storage Errors ─────────────────────────────────────────────

class WriteError(StoreError):
    """Destination not writable, or the write itself failed."""
    def __init__(self, message: str, path: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "WRITE_ERROR", ErrorCategory.STORAGE,
            ErrorSeverity.CRITICAL, context,
        )
        self.path = path


class CorruptTableError(StoreError):
    """Existing table file is not a valid serialized record sequence."""
    def __init__(self, table: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Table '{table}' is corrupt: {reason}",
            "CORRUPT_TABLE", ErrorCategory.STORAGE,
            ErrorSeverity.CRITICAL, context,
        )
        self.table = table


class LockTimeoutError(StoreError):
    """Exclusive table lock not obtained within the configured bound."""
    def __init__(self, lock_path: str, timeout: float, context: ErrorContext | None = None):
        super().__init__(
            f"Could not lock '{lock_path}' within {timeout:g}s",
            "LOCK_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.ERROR, context,
        )
        self.lock_path = lock_path
        self.timeout = timeout


class BackendConnectionError(StoreError):
    """Relational backend unreachable or the connection failed mid-operation."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "BACKEND_CONNECTION_ERROR", ErrorCategory.CONNECTION,
            ErrorSeverity.CRITICAL, context,
        )
        self.operation = operation
