"""Root conftest — shared test configuration.

Invariants:
    - No test sees the host's DATABASE_URL / DB_* variables or a stray .env file
    - Cached settings, backend config and engine managers are cleared around every test
    - Every test gets its own data directory and its own SQLite file

Design Decisions:
    - SQLite files (not :memory:) for the relational engine: each connection sees the same
      database, like a real server, and thread tests need more than one connection
"""

import pytest

from hoistdb.config import BackendConfig, get_backend_config, get_settings
from hoistdb.infrastructure.database import DatabaseEngineManager, engine_manager_for
from hoistdb.services.database_adapter import DatabaseAdapter

STORAGE_ENV_VARS = (
    "DATABASE_URL", "DB_HOST", "DB_USER", "DB_PASSWORD", "DB_NAME", "DB_PORT", "DB_CHARSET",
    "DATA_DIRECTORY", "DEFAULT_NAMESPACE", "LOCK_TIMEOUT_SECONDS",
    "DATABASE_POOL_SIZE", "DATABASE_MAX_OVERFLOW", "LOG_LEVEL", "LOG_FORMAT",
)


def _clear_caches():
    get_settings.cache_clear()
    get_backend_config.cache_clear()
    engine_manager_for.cache_clear()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in STORAGE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
def engine_manager(sqlite_url):
    manager = DatabaseEngineManager(sqlite_url)
    yield manager
    manager.dispose()


@pytest.fixture
def document_adapter(data_dir):
    return DatabaseAdapter("app", BackendConfig.document(data_dir, lock_timeout=2.0))


@pytest.fixture
def relational_adapter(sqlite_url, engine_manager):
    return DatabaseAdapter(
        "app", BackendConfig.relational(sqlite_url), engine_manager=engine_manager,
    )


@pytest.fixture(params=["document", "relational"])
def adapter(request):
    """Runs the test once per backend."""
    return request.getfixturevalue(f"{request.param}_adapter")
