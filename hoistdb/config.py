"""Storage Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Backend selection is decided once per process: get_backend_config() is cached
    - BackendConfig is frozen; adapters receive it and never mutate it
    - No relational settings at all is valid and selects the document backend
    - Relational is selected by DATABASE_URL, or by DB_HOST + DB_USER + DB_NAME together

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Selection looks at configuration only; an unreachable server surfaces later as
      BackendConnectionError instead of silently falling back to files
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from hoistdb.core.domain_types import BackendKind


class Settings(BaseSettings):
    """Storage settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Relational backend: a full URL wins over the DB_* parts
    database_url: str | None = None

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str | None) -> str | None:
        """Blank means unset; bare mysql:// gets the PyMySQL driver."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            if v.startswith("mysql://"):
                return v.replace("mysql://", "mysql+pymysql://", 1)
        return v

    db_host: str | None = None
    db_user: str | None = None
    db_password: str = ""
    db_name: str | None = None
    db_port: int = 3306
    db_charset: str = "utf8mb4"

    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Document backend
    data_directory: Path = Path("data")
    default_namespace: str = "app"
    lock_timeout_seconds: float = 10.0

    @field_validator("lock_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        return v

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format")
    @classmethod
    def known_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    def relational_url(self) -> str | None:
        """SQLAlchemy URL when a relational backend is configured, else None."""
        if self.database_url:
            return self.database_url
        if self.db_host and self.db_user and self.db_name:
            return URL.create(
                "mysql+pymysql",
                username=self.db_user,
                password=self.db_password or None,
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
                query={"charset": self.db_charset},
            ).render_as_string(hide_password=False)
        return None


@dataclass(frozen=True)
class BackendConfig:
    """Process-wide, read-only storage decision."""
    kind: BackendKind
    data_directory: Path
    lock_timeout: float = 10.0
    database_url: str | None = None
    pool_size: int = 5
    max_overflow: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendConfig":
        url = settings.relational_url()
        return cls(
            kind=BackendKind.RELATIONAL if url else BackendKind.DOCUMENT,
            data_directory=settings.data_directory,
            lock_timeout=settings.lock_timeout_seconds,
            database_url=url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    @classmethod
    def document(cls, data_directory: Path | str, lock_timeout: float = 10.0) -> "BackendConfig":
        return cls(BackendKind.DOCUMENT, Path(data_directory), lock_timeout)

    @classmethod
    def relational(
        cls, database_url: str, data_directory: Path | str = "data", **kwargs,
    ) -> "BackendConfig":
        return cls(
            BackendKind.RELATIONAL, Path(data_directory),
            database_url=database_url, **kwargs,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_backend_config() -> BackendConfig:
    return BackendConfig.from_settings(get_settings())
