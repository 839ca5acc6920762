"""
Database Migration System for dbuddy

This module provides a version-controlled migration system that supports
both PostgreSQL and SQLite databases.

Key Features:
- Timestamped up/down migration file pairs
- Version tracking in a single table
- Transactional apply and rollback, one migration at a time
- Dry runs
"""

from .migration_files import GeneratedMigration, Migration, calculate_checksum
from .migration_runner import MigrationRunner, MigrationStatus
from .version_manager import AppliedMigration, VersionManager

__all__ = [
    'AppliedMigration',
    'GeneratedMigration',
    'Migration',
    'MigrationRunner',
    'MigrationStatus',
    'VersionManager',
    'calculate_checksum',
]
