"""
Version Manager for Database Migrations

Tracks which migrations have been applied in a single table.
Supports both PostgreSQL and SQLite databases.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, delete, func, inspect, insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..config import enable_sqlite_transactional_ddl

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = 'dbuddy_migrations'

# Separate base for migration tracking so it never mixes with user schemas
MigrationBase = declarative_base()


class MigrationVersion(MigrationBase):
    """Model for tracking applied migrations"""
    __tablename__ = MIGRATIONS_TABLE
    __table_args__ = (
        Index(f'idx_{MIGRATIONS_TABLE}_version', 'version'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    applied_at = Column(DateTime, server_default=func.now())
    checksum = Column(String(255), nullable=False)  # Recorded for auditing only


@dataclass(frozen=True)
class AppliedMigration:
    """Detached copy of a tracking row"""

    version: str
    name: str
    applied_at: Optional[datetime]
    checksum: str

    @property
    def key(self) -> str:
        return f"{self.version}_{self.name}"


class VersionManager:
    """
    Manages the migration tracking table

    Reads go through their own short-lived session. Writes take the
    connection of the caller's open transaction so that a tracking row
    commits or rolls back together with the migration's own SQL.
    """

    def __init__(self, engine: Engine):
        """
        Initialize version manager with database engine

        Args:
            engine: SQLAlchemy engine instance
        """
        enable_sqlite_transactional_ddl(engine)
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine)
        self.table = MigrationVersion.__table__

    def table_exists(self) -> bool:
        return inspect(self.engine).has_table(MIGRATIONS_TABLE)

    def ensure_schema(self):
        """Create migration tracking table and index if they don't exist"""
        try:
            MigrationBase.metadata.create_all(self.engine, checkfirst=True)
            logger.debug("Migration tracking table ensured")
        except Exception as e:
            logger.error(f"Failed to create migration tracking table: {e}")
            raise

    def get_applied_versions(self) -> List[AppliedMigration]:
        """
        Get list of all applied migrations

        Returns:
            Applied migrations ordered by version, empty when the tracking
            table has not been created yet
        """
        if not self.table_exists():
            logger.debug("Migration tracking table not found")
            return []

        session = self.session_factory()
        try:
            versions = session.query(MigrationVersion)\
                              .order_by(MigrationVersion.version.asc())\
                              .all()

            return [AppliedMigration(
                version=v.version,
                name=v.name,
                applied_at=v.applied_at,
                checksum=v.checksum
            ) for v in versions]
        finally:
            session.close()

    def record_migration(self, connection: Connection, version: str, name: str, checksum: str):
        """
        Record a successfully applied migration

        Args:
            connection: Connection inside the migration's transaction
            version: Migration version
            name: Migration name
            checksum: Checksum of the migration's up and down SQL
        """
        connection.execute(
            insert(self.table).values(version=version, name=name, checksum=checksum)
        )
        logger.debug(f"Recorded migration {version}: {name}")

    def remove_migration_record(self, connection: Connection, version: str):
        """
        Remove a migration record (used during rollback)

        Args:
            connection: Connection inside the rollback's transaction
            version: Version to remove
        """
        result = connection.execute(
            delete(self.table).where(self.table.c.version == version)
        )
        if result.rowcount == 0:
            logger.warning(f"Migration record not found: {version}")
        else:
            logger.debug(f"Removed migration record: {version}")
