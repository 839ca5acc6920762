#!/usr/bin/env python3
"""
dbuddy Command Line Tests

Runs the `dbuddy migration` commands end to end against a temporary
SQLite database.
"""

import io
import logging
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

# Setup test environment
sys.path.insert(0, str(Path(__file__).parent / "src"))

from dbuddy.cli import main


class TestCli(unittest.TestCase):
    """Test the migration commands"""

    def setUp(self):
        """Setup isolated database, migrations directory and environment"""
        self.work_dir = tempfile.mkdtemp()
        self.migrations_dir = os.path.join(self.work_dir, "migrations")
        self.database_url = f"sqlite:///{os.path.join(self.work_dir, 'cli.db')}"

        self.original_env = {var: os.environ.get(var) for var in ("WORKSPACE", "WORKSPACE_FOLDER_PATHS")}
        os.environ["WORKSPACE"] = self.work_dir
        os.environ.pop("WORKSPACE_FOLDER_PATHS", None)

        root_logger = logging.getLogger()
        self.original_handlers = list(root_logger.handlers)
        self.original_levels = (root_logger.level, logging.getLogger("dbuddy").level)

    def tearDown(self):
        """Cleanup test environment"""
        root_logger = logging.getLogger()
        root_logger.handlers[:] = self.original_handlers
        root_logger.setLevel(self.original_levels[0])
        logging.getLogger("dbuddy").setLevel(self.original_levels[1])

        for key, value in self.original_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        shutil.rmtree(self.work_dir, ignore_errors=True)

    def run_cli(self, *args):
        stdout, stderr = io.StringIO(), io.StringIO()
        argv = ["--database-url", self.database_url, "--migrations-dir", self.migrations_dir,
                "migration", *args]
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def write_migration(self, version, name, up_sql, down_sql):
        os.makedirs(self.migrations_dir, exist_ok=True)
        Path(self.migrations_dir, f"{version}_{name}.up.sql").write_text(up_sql)
        Path(self.migrations_dir, f"{version}_{name}.down.sql").write_text(down_sql)

    def test_init(self):
        code, out, _ = self.run_cli("init")

        self.assertEqual(code, 0)
        self.assertIn("Migration system initialized", out)

    def test_create(self):
        code, out, _ = self.run_cli("create", "add_users")

        self.assertEqual(code, 0)
        self.assertIn("Generated migration", out)
        files = sorted(os.listdir(self.migrations_dir))
        self.assertEqual(len(files), 2)
        self.assertTrue(files[0].endswith("_add_users.down.sql"))
        self.assertTrue(files[1].endswith("_add_users.up.sql"))

    def test_status_without_migrations(self):
        code, out, _ = self.run_cli("status")

        self.assertEqual(code, 0)
        self.assertIn("No migrations found", out)

    def test_up_status_down(self):
        self.write_migration("20240101120000", "add_users",
                             "CREATE TABLE users (id INTEGER PRIMARY KEY);", "DROP TABLE users;")
        self.write_migration("20240101130000", "add_posts",
                             "CREATE TABLE posts (id INTEGER PRIMARY KEY);", "DROP TABLE posts;")

        code, out, _ = self.run_cli("up", "--dry-run")
        self.assertEqual(code, 0)
        self.assertIn("(DRY RUN)", out)

        code, out, _ = self.run_cli("status")
        self.assertIn("Total: 2 migrations (0 applied, 2 pending)", out)

        code, out, _ = self.run_cli("up", "20240101120000")
        self.assertEqual(code, 0)
        self.assertIn("20240101120000_add_users", out)
        self.assertNotIn("20240101130000_add_posts", out)

        code, out, _ = self.run_cli("up")
        self.assertIn("20240101130000_add_posts", out)

        code, out, _ = self.run_cli("status")
        self.assertIn("Total: 2 migrations (2 applied, 0 pending)", out)

        code, out, _ = self.run_cli("down", "--target", "20240101120000")
        self.assertEqual(code, 0)
        self.assertIn("Rolling back 1 migration(s)", out)

        code, out, _ = self.run_cli("status")
        self.assertIn("(1 applied, 1 pending)", out)

        code, out, _ = self.run_cli("validate")
        self.assertEqual(code, 0)
        self.assertIn("All applied migrations match", out)

    def test_failed_migration_exit_code(self):
        self.write_migration("20240101120000", "broken", "CREATE TABLE ok (id INTEGER); NOT SQL;", "DROP TABLE ok;")

        code, _, err = self.run_cli("up")

        self.assertEqual(code, 1)
        self.assertIn("20240101120000_broken", err)

        code, out, _ = self.run_cli("status")
        self.assertIn("(0 applied, 1 pending)", out)

    def test_invalid_name_exit_code(self):
        code, _, err = self.run_cli("create", "???")

        self.assertEqual(code, 1)
        self.assertIn("Invalid migration name", err)

    def test_missing_subcommand_is_usage_error(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            main(["migration"])

        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
