"""
dbuddy - versioned schema migrations for PostgreSQL and SQLite
"""

from .database.config import DatabaseConfig
from .database.migrations import MigrationRunner, MigrationStatus
from .errors import (
    ConfigurationError,
    DbuddyError,
    InvalidMigrationNameError,
    MigrationError,
    MigrationExecutionError,
    MigrationFilesystemError,
)

__version__ = "1.0.0"

__all__ = [
    'ConfigurationError',
    'DatabaseConfig',
    'DbuddyError',
    'InvalidMigrationNameError',
    'MigrationError',
    'MigrationExecutionError',
    'MigrationFilesystemError',
    'MigrationRunner',
    'MigrationStatus',
]
