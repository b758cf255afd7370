"""Unit tests for RollbackMigrationUseCase and MigrationOrchestrator.resume."""

import unittest

from migration_engine.application.dtos.migration_dto import ExecutionOptions
from migration_engine.application.orchestrators.migration_orchestrator import MigrationOrchestrator
from migration_engine.application.use_case.execute_migration import MigrationExecutor
from migration_engine.application.use_case.rollback_migration import RollbackMigrationUseCase
from migration_engine.domain.entities.execution import ExecutionStatus, StepStatus
from migration_engine.domain.entities.migration import Operation
from migration_engine.domain.exceptions import InputValidationError
from tests.fixtures.factories import MigrationDataFactory as F
from tests.fixtures.mock_services import FakeQueryExecutor


class TestRollbackMigration(unittest.TestCase):
    """Test reverting completed steps."""

    def setUp(self):
        self.query_executor = FakeQueryExecutor()
        self.executor = MigrationExecutor(self.query_executor)
        self.rollback = RollbackMigrationUseCase(self.executor)
        self.script = F.script([
            F.step(1, "CREATE TABLE t1 (id int);", rollback_sql="DROP TABLE t1;"),
            F.step(2, "CREATE TABLE t2 (id int);", rollback_sql="DROP TABLE t2;"),
            F.step(3, "CREATE TABLE t3 (id int);", rollback_sql="DROP TABLE t3;"),
        ])

    def test_reverts_completed_steps_newest_first(self):
        """Test that only completed steps are reverted, in reverse order."""
        # Arrange
        self.query_executor.failures = {"t3": "disk full"}
        execution = self.executor.execute(self.script, "db")
        self.query_executor.failures = {}
        self.query_executor.executed.clear()

        # Act
        result = self.rollback.execute(self.script, execution, "db")

        # Assert
        self.assertEqual(result.status, ExecutionStatus.COMPLETED)
        self.assertEqual(result.script_id, "script-1-rollback")
        self.assertEqual(self.query_executor.statements, ["DROP TABLE t2", "DROP TABLE t1"])
        self.assertEqual(list(result.step_statuses), ["rollback_step_2", "rollback_step_1"])

    def test_step_without_rollback_fails(self):
        """Test that a completed step without executable rollback SQL fails its inverse."""
        # Arrange
        script = F.script([F.step(1, "DROP SEQUENCE s;", rollback_sql=None, operation=Operation.DROP)])
        execution = self.executor.execute(script, "db")

        # Act
        result = self.rollback.execute(script, execution, "db")

        # Assert
        self.assertEqual(result.status, ExecutionStatus.FAILED)
        self.assertEqual(result.step_statuses["rollback_step_1"], StepStatus.FAILED)

    def test_rejects_dry_run(self):
        execution = self.executor.execute(self.script, "db", ExecutionOptions(dry_run=True))

        with self.assertRaises(InputValidationError):
            self.rollback.execute(self.script, execution, "db")

    def test_rejects_foreign_execution(self):
        other = F.script([F.step(1)], script_id="other")
        execution = self.executor.execute(other, "db")

        with self.assertRaises(InputValidationError):
            self.rollback.execute(self.script, execution, "db")

    def test_rejects_execution_without_completed_steps(self):
        self.query_executor.failures = {"t1": "boom"}
        execution = self.executor.execute(self.script, "db")

        with self.assertRaises(InputValidationError):
            self.rollback.execute(self.script, execution, "db")


class TestResume(unittest.TestCase):
    """Test resuming a failed execution."""

    def setUp(self):
        self.query_executor = FakeQueryExecutor()
        executor = MigrationExecutor(self.query_executor)
        self.orchestrator = MigrationOrchestrator(None, None, executor, RollbackMigrationUseCase(executor))
        self.executor = executor
        self.script = F.script([F.step(1, "CREATE TABLE t1 (id int);"), F.step(2, "CREATE TABLE t2 (id int);")])

    def test_resume_runs_remaining_steps(self):
        """Test that a resumed run only executes what failed before."""
        # Arrange
        self.query_executor.failures = {"t2": "lock timeout"}
        first = self.executor.execute(self.script, "db")
        self.query_executor.failures = {}
        self.query_executor.executed.clear()

        # Act
        second = self.orchestrator.resume(self.script, first, "db")

        # Assert
        self.assertEqual(first.status, ExecutionStatus.FAILED)
        self.assertEqual(second.status, ExecutionStatus.COMPLETED)
        self.assertEqual(self.query_executor.statements, ["CREATE TABLE t2 (id int)"])

    def test_resume_after_dry_run_runs_everything(self):
        first = self.executor.execute(self.script, "db", ExecutionOptions(dry_run=True))

        self.orchestrator.resume(self.script, first, "db")

        self.assertEqual(len(self.query_executor.statements), 2)


if __name__ == '__main__':
    unittest.main()
