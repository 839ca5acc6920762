"""
Database Configuration for dbuddy

Resolves the target database from explicit arguments, environment variables
or a project-level .env file, and builds SQLAlchemy engines for it.
Supports PostgreSQL (default) and SQLite.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = "./migrations"


def get_project_base_directory() -> Path:
    """Get the directory the tool was invoked for (editor workspace or cwd)"""
    first_path = os.getenv("WORKSPACE_FOLDER_PATHS", "").split(",")[0].strip()
    return Path(first_path or os.getenv("WORKSPACE") or os.getcwd())


def find_env_file(base_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Find the .env file for the project

    Looks in the project base directory first, then walks up the
    directory tree.

    Returns:
        Path to the .env file or None if there is none
    """
    current_dir = Path(base_dir or get_project_base_directory()).resolve()

    for directory in [current_dir, *current_dir.parents]:
        env_path = directory / ".env"
        if env_path.is_file():
            return env_path

    return None


def load_environment(base_dir: Optional[Path] = None) -> Optional[Path]:
    """Load the project's .env file without overriding variables already set"""
    env_path = find_env_file(base_dir)
    if env_path:
        load_dotenv(env_path, override=False)
        logger.debug(f"Loaded environment from {env_path}")
    return env_path


def resolve_migrations_dir(migrations_dir: Optional[str] = None) -> Path:
    """Resolve a migrations directory relative to the project base directory"""
    path = Path(migrations_dir or DEFAULT_MIGRATIONS_DIR)
    if path.is_absolute():
        return path
    return (get_project_base_directory() / path).resolve()


def _disable_driver_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


def enable_sqlite_transactional_ddl(engine: Engine):
    """
    Let SQLAlchemy own transaction boundaries on pysqlite.

    The sqlite3 module only opens transactions implicitly before DML, so DDL
    would otherwise run in autocommit mode and survive a rollback. Safe to
    call repeatedly and a no-op for other backends.
    """
    if engine.dialect.name != "sqlite":
        return

    if not event.contains(engine, "connect", _disable_driver_transactions):
        event.listen(engine, "connect", _disable_driver_transactions)
    if not event.contains(engine, "begin", _emit_begin):
        event.listen(engine, "begin", _emit_begin)


class DatabaseConfig:
    """Database configuration manager"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or self._get_database_url()
        self.engine = None

    def _get_database_url(self) -> str:
        """Get database URL from the environment"""
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        host = os.getenv("PGHOST") or os.getenv("DATABASE_HOST") or "localhost"
        port = self._get_int(("PGPORT", "DATABASE_PORT"), 5432)
        name = os.getenv("PGDATABASE") or os.getenv("DATABASE_NAME") or "postgres"
        user = os.getenv("PGUSER") or os.getenv("DATABASE_USER") or "postgres"
        password = os.getenv("PGPASSWORD") or os.getenv("DATABASE_PASSWORD") or ""

        # URL encode password to handle special characters
        encoded_password = quote_plus(password) if password else ""

        if encoded_password:
            return f"postgresql://{user}:{encoded_password}@{host}:{port}/{name}"
        return f"postgresql://{user}@{host}:{port}/{name}"

    @staticmethod
    def _get_int(names, default: int) -> int:
        """Read the first set integer variable among names"""
        for name in names:
            value = os.getenv(name)
            if value is None or value == "":
                continue
            try:
                return int(value)
            except ValueError:
                raise ConfigurationError(
                    f"{name} must be an integer, got {value!r}", setting=name
                ) from None
        return default

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    def create_engine(self, **kwargs) -> Engine:
        """Create SQLAlchemy engine with appropriate configuration"""
        engine_config = {}

        # Add common configuration
        engine_config["echo"] = os.getenv("DB_ECHO", "false").lower() == "true"
        engine_config["pool_pre_ping"] = True

        # Add backend-specific configuration
        if not self.is_sqlite:
            engine_config["pool_size"] = self._get_int(("DB_POOL_SIZE",), 10)
            engine_config["max_overflow"] = self._get_int(("DB_MAX_OVERFLOW",), 20)
            engine_config["pool_timeout"] = self._get_int(("DB_POOL_TIMEOUT",), 30)
            engine_config["pool_recycle"] = self._get_int(("DB_POOL_RECYCLE",), 3600)

        # Override with any provided kwargs
        engine_config.update(kwargs)

        self.engine = create_engine(self.database_url, **engine_config)
        enable_sqlite_transactional_ddl(self.engine)

        logger.debug(f"Engine created for {self.get_connection_info()['database_url']}")
        return self.engine

    def get_engine(self) -> Engine:
        """Get the engine, creating it on first use"""
        if self.engine is None:
            self.create_engine()
        return self.engine

    def dispose(self):
        """Release pooled connections"""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def get_connection_info(self) -> Dict:
        """Get connection information for debugging"""
        return {
            "backend": make_url(self.database_url).get_backend_name(),
            "database_url": make_url(self.database_url).render_as_string(hide_password=True),
            "engine_created": self.engine is not None,
        }
