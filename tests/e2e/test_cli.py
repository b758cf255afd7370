"""End-to-end tests for the click CLI."""

import json
import os
import unittest
from unittest.mock import patch

from click.testing import CliRunner

from migration_engine.infrastructure.di_container import DIContainer
from migration_engine.presentation.cli.commands import cli
from tests.fixtures.mock_services import CatalogSimulator, FakeQueryExecutor
from tests.fixtures.scenarios import SOURCE_CATALOG, build_provider


class TestCli(unittest.TestCase):
    """Test the commands against a container with fake transports."""

    def setUp(self):
        self.env = patch.dict(os.environ, {}, clear=True)
        self.env.start()
        self.addCleanup(self.env.stop)
        self.container = DIContainer()
        self.catalog = CatalogSimulator(SOURCE_CATALOG)
        self.query_executor = FakeQueryExecutor(responder=self.catalog)
        self.container.override("snapshot_provider", build_provider())
        self.container.override("query_executor", self.query_executor)
        self.runner = CliRunner()

    def invoke(self, *args):
        return self.runner.invoke(cli, list(args), obj=self.container)

    def test_compare(self):
        """Test the difference listing and saved comparison."""
        with self.runner.isolated_filesystem():
            # Act
            result = self.invoke("compare", "-o", "comparison.json")

            # Assert
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("7 differences (4 source / 6 target objects)", result.output)
            self.assertIn("Removed   table     public.legacy", result.output)
            with open("comparison.json") as f:
                self.assertEqual(json.load(f)["summary"]["Added"], 4)

    def test_plan_execute_rollback(self):
        """Test the file-based workflow across three commands."""
        with self.runner.isolated_filesystem():
            # Act
            planned = self.invoke("plan", "-o", "plan.json", "--author", "dba")
            executed = self.invoke("execute", "plan.json", "-o", "result.json")
            rolled_back = self.invoke("rollback", "plan.json", "result.json", "-o", "rollback.json")

            # Assert
            self.assertEqual(planned.exit_code, 0, planned.output)
            self.assertIn("Steps: 4", planned.output)
            self.assertIn("critical", planned.output)
            self.assertIn("4. ALTER view v_users", planned.output)

            self.assertEqual(executed.exit_code, 0, executed.output)
            self.assertIn("completed: 4 completed, 0 failed", executed.output)
            with open("result.json") as f:
                self.assertEqual(json.load(f)["status"], "completed")

            self.assertEqual(rolled_back.exit_code, 0, rolled_back.output)
            self.assertIn("Rolling back 4 completed steps", rolled_back.output)
            self.assertEqual(self.catalog.present, set(SOURCE_CATALOG))

    def test_dry_run(self):
        with self.runner.isolated_filesystem():
            self.invoke("plan", "-o", "plan.json")

            result = self.invoke("execute", "plan.json", "--dry-run", "-o", "result.json")

            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("(dry run)", result.output)
            self.assertEqual(self.query_executor.executed, [])

    def test_failed_execution_exits_non_zero_and_resumes(self):
        """Test that a failed run exits 1 and --resume finishes it."""
        with self.runner.isolated_filesystem():
            # Arrange
            self.invoke("plan", "-o", "plan.json")
            self.query_executor.failures = {"CREATE INDEX": "disk full"}

            # Act
            failed = self.invoke("execute", "plan.json", "-o", "first.json")
            self.query_executor.failures = {}
            resumed = self.invoke("execute", "plan.json", "--resume", "first.json", "-o", "second.json")

            # Assert
            self.assertEqual(failed.exit_code, 1)
            self.assertIn("disk full", failed.output)
            self.assertEqual(resumed.exit_code, 0, resumed.output)
            self.assertIn("Step 1 already completed in a previous execution", resumed.output)

    def test_identical_schemas(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("plan", "--source", "target", "--target", "target")

            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("Schemas are identical", result.output)
            self.assertFalse(os.path.exists("migration_plan.json"))

    def test_bad_connection_option(self):
        result = self.invoke("-c", "no-equals-sign", "compare")

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("expected NAME=DSN", result.output)

    def test_unknown_connection_aborts(self):
        """Test that engine errors are reported and abort the command."""
        self.container.override("snapshot_provider", _UnknownRefProvider())

        result = self.invoke("compare", "--source", "nowhere")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error: Unknown connection reference", result.output)


class _UnknownRefProvider:
    def get_objects(self, connection_ref):
        from migration_engine.domain.exceptions import InputValidationError
        raise InputValidationError(f"Unknown connection reference: {connection_ref!r}")


if __name__ == '__main__':
    unittest.main()
