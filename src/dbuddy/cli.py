#!/usr/bin/env python3
"""
dbuddy command line interface

Usage:
    dbuddy migration init
    dbuddy migration create <name>
    dbuddy migration up [target] [--dry-run]
    dbuddy migration down [target] [--dry-run]
    dbuddy migration status
    dbuddy migration validate
"""

import argparse
import sys
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database.config import DatabaseConfig, load_environment
from .database.migrations import MigrationRunner
from .errors import DbuddyError, LoggingManager

logger = LoggingManager.get_logger('cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dbuddy',
        description='Versioned schema migrations for PostgreSQL and SQLite',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dbuddy migration init
  dbuddy migration create add_users_table
  dbuddy migration up
  dbuddy migration down --target 20240101120000
  dbuddy migration status
        """
    )

    parser.add_argument(
        '--database-url',
        help='Database URL (default: DATABASE_URL or PG* environment variables)'
    )

    parser.add_argument(
        '--migrations-dir',
        help='Migrations directory (default: ./migrations)'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    commands = parser.add_subparsers(dest='command', required=True)
    migration = commands.add_parser('migration', help='Migration management commands')
    actions = migration.add_subparsers(dest='action', required=True)

    actions.add_parser('init', help='Initialize migration system')

    create = actions.add_parser('create', help='Create new migration files')
    create.add_argument('name', help='Migration name')

    for action, help_text in (('up', 'Apply pending migrations up to target'),
                              ('down', 'Rollback migrations down to target')):
        sub = actions.add_parser(action, help=help_text)
        sub.add_argument('target', nargs='?', help='Target migration version')
        sub.add_argument('--target', dest='target_option', help='Target migration version')
        sub.add_argument('--dry-run', action='store_true',
                         help='Show what would be done without executing')

    actions.add_parser('status', help='Show migration status')
    actions.add_parser('validate', help='Check applied migrations against files')

    return parser


def print_status(runner: MigrationRunner):
    status = runner.get_status()

    if not status:
        print('📋 No migrations found')
        return

    print('\n📋 Migration Status:\n')

    version_width = max(len('Version'), *(len(s.version) for s in status))
    name_width = max(len('Name'), *(len(s.name) for s in status))

    print(f"{'Version'.ljust(version_width)}  {'Name'.ljust(name_width)}  {'Status'.ljust(10)}  Applied At")
    print('-' * (version_width + name_width + 35))

    for migration in status:
        state = '✅ applied' if migration.status == 'applied' else '⏳ pending'
        applied_at = migration.applied_at.strftime('%Y-%m-%d %H:%M:%S') if migration.applied_at else '-'
        print(f"{migration.version.ljust(version_width)}  {migration.name.ljust(name_width)}  "
              f"{state.ljust(10)}  {applied_at}")

    applied_count = sum(1 for s in status if s.status == 'applied')
    print(f"\nTotal: {len(status)} migrations "
          f"({applied_count} applied, {len(status) - applied_count} pending)")


def run_migration_command(runner: MigrationRunner, args: argparse.Namespace):
    action = args.action

    if action == 'init':
        runner.initialize()
        print('✅ Migration system initialized')

    elif action == 'create':
        generated = runner.generate_migration(args.name)
        print(f'✅ Generated migration: {generated.version}')
        print(f'   Up:   {generated.up_file}')
        print(f'   Down: {generated.down_file}')

    elif action == 'up':
        target = args.target_option or args.target
        migrations = runner.migrate_up(target=target, dry_run=args.dry_run)
        if not migrations:
            print('✅ No pending migrations to apply')
            return
        suffix = ' (DRY RUN)' if args.dry_run else ''
        print(f'🚀 Applying {len(migrations)} migration(s){suffix}')
        for migration in migrations:
            print(f'   📦 {migration.key}')
        print('✅ Migration complete!' if not args.dry_run else '✅ Dry run complete')

    elif action == 'down':
        target = args.target_option or args.target
        records = runner.migrate_down(target=target, dry_run=args.dry_run)
        if not records:
            print('✅ No migrations to rollback')
            return
        suffix = ' (DRY RUN)' if args.dry_run else ''
        print(f'🔄 Rolling back {len(records)} migration(s){suffix}')
        for record in records:
            print(f'   📦 {record.key}')
        print('✅ Rollback complete!' if not args.dry_run else '✅ Dry run complete')

    elif action == 'status':
        print_status(runner)

    elif action == 'validate':
        issues = runner.validate_migrations()
        if not issues:
            print('✅ All applied migrations match the migration files')
            return
        for issue in issues:
            print(f"⚠️ [{issue['type']}] {issue['message']}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the dbuddy command"""
    parser = build_parser()
    args = parser.parse_args(argv)

    LoggingManager.setup_logging('DEBUG' if args.verbose else 'WARNING')
    load_environment()

    config = None
    try:
        config = DatabaseConfig(database_url=args.database_url)
        runner = MigrationRunner(config.get_engine(), args.migrations_dir)
        run_migration_command(runner, args)
    except (DbuddyError, SQLAlchemyError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f'❌ {e}', file=sys.stderr)
        return 1
    finally:
        if config is not None:
            config.dispose()

    return 0


if __name__ == '__main__':
    sys.exit(main())
