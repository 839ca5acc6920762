"""
Migration File Store

Discovers migration file pairs on disk, generates new pairs and fingerprints
their content.

Migrations are two UTF-8 files sharing a key:
- 20240101120000_add_users.up.sql
- 20240101120000_add_users.down.sql

The 14 digit UTC timestamp determines the order, the name is for humans.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, NamedTuple

from ...errors import InvalidMigrationNameError, MigrationFilesystemError

logger = logging.getLogger(__name__)

VERSION_FORMAT = "%Y%m%d%H%M%S"
VERSION_WIDTH = 14

MIGRATION_FILE_PATTERN = re.compile(
    r'^(?P<version>\d{%d})_(?P<name>\w+)\.(?P<direction>up|down)\.sql$' % VERSION_WIDTH
)
DOLLAR_QUOTE_PATTERN = re.compile(r"\$(?:[A-Za-z_]\w*)?\$")


@dataclass(frozen=True)
class Migration:
    """A complete up/down migration pair read from disk."""

    version: str
    name: str
    up_sql: str
    down_sql: str

    @property
    def key(self) -> str:
        return f"{self.version}_{self.name}"

    @property
    def checksum(self) -> str:
        return calculate_checksum(self.up_sql, self.down_sql)

    def __str__(self) -> str:
        return self.key


class GeneratedMigration(NamedTuple):
    version: str
    up_file: Path
    down_file: Path


def calculate_checksum(up_sql: str, down_sql: str) -> str:
    """SHA-256 hex digest of the up SQL followed by the down SQL"""
    return hashlib.sha256((up_sql + down_sql).encode('utf-8')).hexdigest()


def load_migrations(migrations_dir: Path) -> List[Migration]:
    """
    Load all complete migrations from a directory.

    Files that do not follow the naming grammar are ignored. A key with
    only one of its up/down files is logged and left out. Versions claimed
    by more than one migration are ambiguous: every migration with such a
    version is logged and left out.

    Args:
        migrations_dir: Directory to scan (not recursive)

    Returns:
        Migrations sorted by version
    """
    migrations_dir = Path(migrations_dir)
    if not migrations_dir.exists():
        logger.debug(f"Migrations directory {migrations_dir} does not exist")
        return []

    groups: Dict[str, Dict[str, str]] = {}

    try:
        entries = sorted(migrations_dir.iterdir())
        for file_path in entries:
            match = MIGRATION_FILE_PATTERN.match(file_path.name)
            if not match or not file_path.is_file():
                continue

            key = f"{match.group('version')}_{match.group('name')}"
            group = groups.setdefault(key, {
                'version': match.group('version'),
                'name': match.group('name'),
            })
            group[match.group('direction')] = file_path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise MigrationFilesystemError(
            f"Failed to read migrations directory {migrations_dir}: {e}",
            path=str(migrations_dir)
        ) from e

    migrations = []
    for key, group in groups.items():
        if 'up' not in group or 'down' not in group:
            missing = 'down' if 'up' in group else 'up'
            logger.warning(f"⚠️ Incomplete migration files for {key} (missing {missing} file)")
            continue

        migrations.append(Migration(
            version=group['version'],
            name=group['name'],
            up_sql=group['up'],
            down_sql=group['down'],
        ))

    migrations.sort(key=lambda m: (m.version, m.name))

    versions = [m.version for m in migrations]
    duplicates = {v for v in versions if versions.count(v) > 1}
    for version in sorted(duplicates):
        keys = ", ".join(m.key for m in migrations if m.version == version)
        logger.warning(f"⚠️ Several migrations share version {version}, skipping all of them: {keys}")
    migrations = [m for m in migrations if m.version not in duplicates]

    logger.debug(f"Discovered {len(migrations)} migrations in {migrations_dir}")
    return migrations


def sanitize_migration_name(name: str) -> str:
    """Reduce a free-form name to word characters and single underscores"""
    sanitized = re.sub(r'\W', '_', name.strip())
    sanitized = re.sub(r'_+', '_', sanitized).strip('_')
    if not sanitized:
        raise InvalidMigrationNameError(f"Invalid migration name: {name!r}", name=name)
    return sanitized


def _file_header(name: str, created: datetime, direction: str) -> str:
    if direction == 'up':
        marker = "Up migration"
        hint = "Add your SQL statements here"
    else:
        marker = "Down migration (rollback)"
        hint = "Add your rollback SQL statements here"

    return (
        f"-- Migration: {name}\n"
        f"-- Created: {created.isoformat()}\n"
        f"-- {marker}\n"
        f"\n"
        f"-- {hint}\n"
    )


def create_migration_files(migrations_dir: Path, name: str,
                           now: datetime = None) -> GeneratedMigration:
    """
    Create a new up/down migration file pair.

    Args:
        migrations_dir: Target directory (created if missing)
        name: Migration name (will be sanitized)
        now: Creation time, defaults to the current UTC time

    Returns:
        The new version and the paths of both files
    """
    name = sanitize_migration_name(name)
    now = now or datetime.now(timezone.utc)
    version = now.strftime(VERSION_FORMAT)

    migrations_dir = Path(migrations_dir)
    up_file = migrations_dir / f"{version}_{name}.up.sql"
    down_file = migrations_dir / f"{version}_{name}.down.sql"

    try:
        migrations_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise MigrationFilesystemError(
            f"Failed to create migrations directory: {migrations_dir}. Error: {e}",
            path=str(migrations_dir)
        ) from e

    try:
        with open(up_file, 'x', encoding='utf-8') as f:
            f.write(_file_header(name, now, 'up'))
        with open(down_file, 'x', encoding='utf-8') as f:
            f.write(_file_header(name, now, 'down'))
    except OSError as e:
        raise MigrationFilesystemError(
            f"Failed to write migration {version}_{name}: {e}",
            path=str(e.filename or migrations_dir)
        ) from e

    logger.info(f"Created migration files: {up_file.name}, {down_file.name}")
    return GeneratedMigration(version, up_file, down_file)


def _starts_escape_string(sql: str, quote_index: int) -> bool:
    """True when the quote at quote_index opens a PostgreSQL E'...' literal"""
    if quote_index == 0 or sql[quote_index - 1] not in 'Ee':
        return False
    return quote_index == 1 or not (sql[quote_index - 2].isalnum() or sql[quote_index - 2] == '_')


def split_sql_statements(sql: str) -> List[str]:
    """
    Split a SQL script into individual statements.

    Semicolons inside quoted strings (including E'...' strings with
    backslash escapes), quoted identifiers, comments and PostgreSQL
    dollar-quoted bodies do not end a statement. Fragments made
    only of whitespace and comments are dropped.

    Args:
        sql: SQL script

    Returns:
        Statements without their terminating semicolon
    """
    statements = []
    current = []
    has_code = False
    i = 0
    length = len(sql)

    while i < length:
        char = sql[i]

        if char == '-' and sql.startswith('--', i):
            end = sql.find('\n', i)
            end = length if end == -1 else end
            current.append(sql[i:end])
            i = end
            continue

        if char == '/' and sql.startswith('/*', i):
            end = sql.find('*/', i + 2)
            end = length if end == -1 else end + 2
            current.append(sql[i:end])
            i = end
            continue

        if char in ("'", '"'):
            # Doubled quote characters are escapes and keep the literal open,
            # backslashes escape too inside E'...' strings
            backslash_escapes = char == "'" and _starts_escape_string(sql, i)
            end = i + 1
            while end < length:
                if backslash_escapes and sql[end] == '\\':
                    end += 2
                    continue
                if sql[end] == char:
                    if end + 1 < length and sql[end + 1] == char:
                        end += 2
                        continue
                    break
                end += 1
            end = min(end + 1, length)
            current.append(sql[i:end])
            has_code = True
            i = end
            continue

        if char == '$':
            tag = DOLLAR_QUOTE_PATTERN.match(sql, i)
            if tag:
                delimiter = tag.group(0)
                end = sql.find(delimiter, i + len(delimiter))
                end = length if end == -1 else end + len(delimiter)
                current.append(sql[i:end])
                has_code = True
                i = end
                continue

        if char == ';':
            if has_code:
                statements.append(''.join(current).strip())
            current = []
            has_code = False
            i += 1
            continue

        if not char.isspace():
            has_code = True
        current.append(char)
        i += 1

    if has_code:
        statements.append(''.join(current).strip())

    return statements
