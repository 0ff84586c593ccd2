"""Database Engine Manager — synchronous SQLAlchemy engine with error mapping and health checks.

Invariants:
    - One engine per (url, pool settings) per process: engine_manager_for() is cached
    - Every connection() block runs in a transaction: committed on success, rolled back on error
    - SQLAlchemy exceptions never escape: connection failures map to BackendConnectionError,
      constraint and driver failures on writes map to WriteError
    - Connection pool uses pool_pre_ping for stale connection detection

Design Decisions:
    - Sync engine: request handlers call the store synchronously, one context per request
    - Pool sizing only passed to non-SQLite URLs; SQLite picks its own pool class
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import (
    ArgumentError, DBAPIError, IntegrityError, InterfaceError, NoSuchModuleError,
    OperationalError, SQLAlchemyError,
)

from hoistdb.core.errors import (
    BackendConnectionError, ConfigurationError, ErrorContext, StoreError, WriteError,
)

logger = logging.getLogger(__name__)

WRITE_OPERATIONS = frozenset({"insert", "update", "delete", "create_table", "add_column"})


class DatabaseEngineManager:
    """Owns the engine and hands out transactional connections."""

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10):
        try:
            url = make_url(database_url)
            kwargs: dict = {"pool_pre_ping": True}
            if url.get_backend_name() != "sqlite":
                kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600)
            self.engine: Engine = create_engine(url, **kwargs)
        except (ArgumentError, NoSuchModuleError, ImportError) as e:
            logger.error(
                f"Invalid database configuration: {e}",
                extra={"error_code": "CONFIGURATION_ERROR"},
            )
            raise ConfigurationError(f"Invalid database URL or missing driver: {e}") from e

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def connection(
        self, operation: str, context: ErrorContext | None = None,
    ) -> Iterator[Connection]:
        """Provide a connection inside a transaction, mapping driver errors."""
        ctx = context or ErrorContext(operation=operation)
        extra = {
            "operation": operation, "table": ctx.table,
            "namespace": ctx.namespace, "backend": ctx.backend,
        }
        try:
            with self.engine.begin() as conn:
                yield conn
        except StoreError:
            raise
        except IntegrityError as e:
            logger.error(f"DB integrity error: {e}", extra={**extra, "error_code": "WRITE_ERROR"})
            raise WriteError("Integrity constraint violated", context=ctx) from e
        except (OperationalError, InterfaceError) as e:
            logger.error(
                f"DB operational error: {e}",
                extra={**extra, "error_code": "BACKEND_CONNECTION_ERROR"},
            )
            raise BackendConnectionError(
                "Connection or operational error", operation, ctx,
            ) from e
        except DBAPIError as e:
            if operation in WRITE_OPERATIONS:
                logger.error(f"DB driver error: {e}", extra={**extra, "error_code": "WRITE_ERROR"})
                raise WriteError(f"Database driver rejected {operation}", context=ctx) from e
            logger.error(
                f"DB driver error: {e}",
                extra={**extra, "error_code": "BACKEND_CONNECTION_ERROR"},
            )
            raise BackendConnectionError("Database driver error", operation, ctx) from e
        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error: {e}",
                extra={**extra, "error_code": "BACKEND_CONNECTION_ERROR"},
            )
            raise BackendConnectionError("Database operation failed", operation, ctx) from e

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.connection("health_check") as conn:
                conn.execute(text("SELECT 1"))
            return True
        except StoreError as e:
            logger.error(f"DB health check failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


@lru_cache
def engine_manager_for(
    database_url: str, pool_size: int = 5, max_overflow: int = 10,
) -> DatabaseEngineManager:
    """Process-wide manager for one database URL."""
    return DatabaseEngineManager(database_url, pool_size=pool_size, max_overflow=max_overflow)
