"""
Migration Runner for Database Schema Changes

Applies and reverts migration file pairs in version order. Every migration
runs in its own transaction together with its tracking row, and a batch
stops at the first failure.
Handles both PostgreSQL and SQLite environments.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ...errors import MigrationExecutionError
from ..config import resolve_migrations_dir
from .migration_files import (
    GeneratedMigration,
    Migration,
    create_migration_files,
    load_migrations,
    split_sql_statements,
)
from .version_manager import AppliedMigration, VersionManager

logger = logging.getLogger(__name__)

APPLIED = 'applied'
PENDING = 'pending'


@dataclass(frozen=True)
class MigrationStatus:
    version: str
    name: str
    status: str
    applied_at: Optional[datetime] = None


class MigrationRunner:
    """
    Executes database migrations

    Features:
    - Ordered apply and rollback with an optional target version
    - One transaction per migration, including its tracking row
    - Stops at the first failing migration
    - Dry runs that never touch the database
    """

    def __init__(self, engine: Engine, migrations_dir: Union[str, Path, None] = None):
        """
        Initialize migration runner

        Args:
            engine: SQLAlchemy engine instance
            migrations_dir: Path to migration files directory, relative paths
                resolve against the project base directory
        """
        self.engine = engine
        self.version_manager = VersionManager(engine)
        self.migrations_path = resolve_migrations_dir(
            str(migrations_dir) if migrations_dir is not None else None
        )

        logger.debug(f"Migration runner initialized for {engine.dialect.name} database")
        logger.debug(f"Migrations path: {self.migrations_path}")

    def initialize(self):
        """Create the migration tracking table"""
        self.version_manager.ensure_schema()
        logger.info("✅ Migration system initialized")

    def generate_migration(self, name: str) -> GeneratedMigration:
        """
        Generate a new migration file pair

        Args:
            name: Migration name

        Returns:
            Version and paths of the up and down files
        """
        generated = create_migration_files(self.migrations_path, name)
        logger.info(f"✅ Generated migration: {generated.version}")
        return generated

    def get_status(self) -> List[MigrationStatus]:
        """
        Get status of every migration found on disk

        Returns:
            One entry per migration, ordered by version
        """
        self.version_manager.ensure_schema()

        migrations = load_migrations(self.migrations_path)
        applied = {r.version: r for r in self.version_manager.get_applied_versions()}

        status = []
        for migration in migrations:
            record = applied.get(migration.version)
            status.append(MigrationStatus(
                version=migration.version,
                name=migration.name,
                status=APPLIED if record else PENDING,
                applied_at=record.applied_at if record else None
            ))
        return status

    def migrate_up(self, target: Optional[str] = None, dry_run: bool = False) -> List[Migration]:
        """
        Apply pending migrations up to and including target version

        Args:
            target: Highest version to apply (None = all pending)
            dry_run: Only report what would be applied

        Returns:
            Migrations applied, or that would be applied, in order
        """
        if not dry_run:
            self.version_manager.ensure_schema()

        migrations = load_migrations(self.migrations_path)
        applied_versions = {r.version for r in self.version_manager.get_applied_versions()}

        pending = [m for m in migrations if m.version not in applied_versions]
        if target is not None:
            pending = [m for m in pending if m.version <= target]

        if not pending:
            logger.info("✅ No pending migrations to apply")
            return []

        logger.info(f"🚀 Applying {len(pending)} migration(s){' (DRY RUN)' if dry_run else ''}")

        if dry_run:
            for migration in pending:
                logger.info(f"   📦 {migration.key}")
            return pending

        for migration in pending:
            self._apply_migration(migration)

        logger.info("✅ Migration complete!")
        return pending

    def _apply_migration(self, migration: Migration):
        """
        Apply a single migration and record it in one transaction

        Args:
            migration: Migration to apply
        """
        logger.info(f"   📦 {migration.key}")

        try:
            with self.engine.begin() as connection:
                self._execute_script(connection, migration.up_sql, migration.key)
                self.version_manager.record_migration(
                    connection, migration.version, migration.name, migration.checksum
                )
        except SQLAlchemyError as e:
            logger.error(f"   ❌ Failed to apply {migration.key}: {e}")
            raise MigrationExecutionError(
                f"Migration {migration.key} failed to apply: {e}",
                version=migration.version,
                name=migration.name,
                direction='up'
            ) from e

        logger.info(f"   ✅ Applied {migration.key}")

    def migrate_down(self, target: Optional[str] = None,
                     dry_run: bool = False) -> List[AppliedMigration]:
        """
        Roll back applied migrations newer than target version

        Without a target every applied migration is rolled back, newest
        first, not only the latest one.

        Args:
            target: Version to keep (None = roll back everything)
            dry_run: Only report what would be rolled back

        Returns:
            Records rolled back, or that would be, in order
        """
        if not dry_run:
            self.version_manager.ensure_schema()

        migrations = {m.version: m for m in load_migrations(self.migrations_path)}
        applied = self.version_manager.get_applied_versions()

        selected = [r for r in applied if target is None or r.version > target]
        selected.sort(key=lambda r: r.version, reverse=True)

        if not selected:
            logger.info("✅ No migrations to rollback")
            return []

        logger.info(f"🔄 Rolling back {len(selected)} migration(s){' (DRY RUN)' if dry_run else ''}")

        rolled_back = []
        for record in selected:
            migration = migrations.get(record.version)
            if migration is None:
                logger.warning(f"⚠️ Migration file not found for {record.key}, skipping")
                continue

            if dry_run:
                logger.info(f"   📦 {record.key}")
            else:
                self._rollback_migration(migration, record)
            rolled_back.append(record)

        if not dry_run:
            logger.info("✅ Rollback complete!")
        return rolled_back

    def _rollback_migration(self, migration: Migration, record: AppliedMigration):
        """
        Roll back a single migration and delete its record in one transaction

        Args:
            migration: File pair providing the down SQL
            record: Tracking row being reverted
        """
        logger.info(f"   📦 {record.key}")

        try:
            with self.engine.begin() as connection:
                self._execute_script(connection, migration.down_sql, record.key)
                self.version_manager.remove_migration_record(connection, record.version)
        except SQLAlchemyError as e:
            logger.error(f"   ❌ Failed to rollback {record.key}: {e}")
            raise MigrationExecutionError(
                f"Migration {record.key} failed to roll back: {e}",
                version=record.version,
                name=record.name,
                direction='down'
            ) from e

        logger.info(f"   ✅ Rolled back {record.key}")

    def _execute_script(self, connection, sql: str, migration_key: str):
        """
        Execute a migration body on one connection

        sqlite3 runs one statement per call, so SQLite bodies are split
        first. Other backends receive the body verbatim in a single call.
        """
        statements = split_sql_statements(sql)
        if not statements:
            logger.warning(f"Migration {migration_key} has no SQL to execute")
            return

        if connection.dialect.name != 'sqlite':
            connection.exec_driver_sql(sql)
            logger.debug(f"Executed script for {migration_key}")
            return

        for i, statement in enumerate(statements):
            try:
                connection.exec_driver_sql(statement)
                logger.debug(f"Executed statement {i+1}/{len(statements)} for {migration_key}")
            except Exception:
                logger.error(f"Failed at statement {i+1} in {migration_key}: {statement[:100]}...")
                raise

    def validate_migrations(self) -> List[Dict]:
        """
        Compare applied migrations with the files on disk

        Checksums are not compared; they are kept for auditing only.

        Returns:
            List of validation issues
        """
        issues = []

        available = {m.version: m for m in load_migrations(self.migrations_path)}
        for record in self.version_manager.get_applied_versions():
            migration = available.get(record.version)
            if migration is None:
                issues.append({
                    'type': 'missing_file',
                    'version': record.version,
                    'message': f"Migration {record.key} is applied but its files are missing"
                })
            elif migration.name != record.name:
                issues.append({
                    'type': 'name_mismatch',
                    'version': record.version,
                    'message': f"Migration {record.version} name mismatch: "
                               f"DB='{record.name}' File='{migration.name}'"
                })

        if issues:
            logger.warning(f"Found {len(issues)} migration validation issues")
        else:
            logger.info("All migrations validated successfully")

        return issues
