"""Database Adapter — one entry point that routes table queries to the configured engine.

Invariants:
    - The backend is fixed at construction from a frozen BackendConfig and never changes
    - table(name) always returns a fresh builder; the adapter itself holds no query state
    - Both engines expose the identical TableQuery surface, so callers never branch on backend
    - An unreachable relational server raises BackendConnectionError at the first call;
      there is no fallback to the document engine

Design Decisions:
    - Explicit if/else routing over a registry: two engines, both visible in one place
    - Engine manager injectable so tests and embedding apps can share one engine
"""

import logging

from hoistdb.config import BackendConfig, get_backend_config
from hoistdb.core.domain_types import BackendKind, validate_name
from hoistdb.core.repository_protocols import TableQuery, TableSource
from hoistdb.infrastructure.database import DatabaseEngineManager, engine_manager_for
from hoistdb.infrastructure.document_table import DocumentStore
from hoistdb.infrastructure.relational_query import RelationalStore

logger = logging.getLogger(__name__)


class DatabaseAdapter:
    """Routes table(name) to the document or relational engine."""

    def __init__(
        self,
        namespace: str,
        config: BackendConfig | None = None,
        engine_manager: DatabaseEngineManager | None = None,
    ):
        self.namespace = validate_name(namespace, "namespace")
        self._config = config or get_backend_config()
        self._store: TableSource
        if self._config.kind is BackendKind.RELATIONAL:
            manager = engine_manager or engine_manager_for(
                self._config.database_url,
                self._config.pool_size,
                self._config.max_overflow,
            )
            self._store = RelationalStore(self.namespace, manager)
        else:
            self._store = DocumentStore(
                self.namespace, self._config.data_directory, self._config.lock_timeout,
            )
        logger.debug(
            f"Adapter for namespace {self.namespace} using {self._config.kind.value}",
            extra={"namespace": self.namespace, "backend": self._config.kind.value},
        )

    @property
    def backend(self) -> BackendKind:
        return self._config.kind

    def is_relational(self) -> bool:
        return self._config.kind is BackendKind.RELATIONAL

    def is_document(self) -> bool:
        return self._config.kind is BackendKind.DOCUMENT

    def table(self, name: str) -> TableQuery:
        return self._store.table(name)

    def table_names(self) -> list[str]:
        return self._store.table_names()

    def health_check(self) -> bool:
        """True when the active engine can serve reads and writes."""
        healthy = self._store.health_check()
        if not healthy:
            logger.warning(
                f"Health check failed for {self._config.kind.value} backend",
                extra={"namespace": self.namespace, "backend": self._config.kind.value},
            )
        return healthy
