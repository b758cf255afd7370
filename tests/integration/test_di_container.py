"""Integration tests for DIContainer wiring."""

import os
import unittest
from unittest.mock import patch

from migration_engine.application.dtos.migration_dto import MigrationRequest
from migration_engine.domain.entities.difference import ComparisonMode
from migration_engine.domain.entities.execution import ExecutionStatus
from migration_engine.domain.exceptions import InputValidationError
from migration_engine.infrastructure.database.connection import ConnectionRegistry
from migration_engine.infrastructure.database.inspector import PostgresSnapshotProvider
from migration_engine.infrastructure.di_container import DIContainer
from tests.fixtures.mock_services import CatalogSimulator, FakeQueryExecutor
from tests.fixtures.scenarios import SOURCE_CATALOG, build_provider

ENV = {
    "MIGRATION_SOURCE_DSN": "postgresql://app@db/source",
    "MIGRATION_TARGET_DSN": "postgresql://app@db/target",
    "MIGRATION_COMPARISON_MODE": "Lenient",
    "MIGRATION_STOP_ON_ERROR": "0",
    "MIGRATION_MAX_GRAPH_DEPTH": "25",
}


class TestDIContainer(unittest.TestCase):
    """Test configuration and service construction."""

    def test_configuration_from_environment(self):
        """Test that environment variables configure the container."""
        # Act
        with patch.dict(os.environ, ENV, clear=True):
            container = DIContainer().configure()

        # Assert
        registry = container.get_connection_registry()
        self.assertIsInstance(registry, ConnectionRegistry)
        self.assertEqual(registry.refs(), ["source", "target"])
        self.assertEqual(container.comparison_mode, ComparisonMode.LENIENT)
        self.assertFalse(container.stop_on_error)
        self.assertEqual(container.get_dependency_grapher().max_depth, 25)

    def test_arguments_win_over_environment(self):
        with patch.dict(os.environ, ENV, clear=True):
            container = DIContainer().configure(
                connections={"source": "postgresql://app@db/other", "staging": "postgresql://app@db/staging"},
                comparison_mode="strict",
                stop_on_error=True,
            )

        registry = container.get_connection_registry()
        self.assertEqual(registry.dsn_for("source"), "postgresql://app@db/other")
        self.assertEqual(registry.refs(), ["source", "staging", "target"])
        self.assertEqual(container.comparison_mode, ComparisonMode.STRICT)
        self.assertTrue(container.stop_on_error)

    def test_bad_environment_values_fall_back(self):
        """Test that unknown modes and non-numeric limits are ignored."""
        env = {"MIGRATION_COMPARISON_MODE": "fuzzy", "MIGRATION_MAX_GRAPH_DEPTH": "deep"}

        with patch.dict(os.environ, env, clear=True):
            container = DIContainer().configure()

        self.assertEqual(container.comparison_mode, ComparisonMode.STRICT)
        self.assertIsNone(container.get_dependency_grapher().max_depth)

    def test_services_are_cached(self):
        with patch.dict(os.environ, {}, clear=True):
            container = DIContainer().configure()

        provider = container.get_snapshot_provider()

        self.assertIsInstance(provider, PostgresSnapshotProvider)
        self.assertIs(container.get_snapshot_provider(), provider)
        self.assertIs(container.get_diff_engine(), container.get_diff_engine())

    def test_unknown_reference_is_rejected(self):
        with patch.dict(os.environ, {}, clear=True):
            registry = DIContainer().configure().get_connection_registry()

        with self.assertRaises(InputValidationError):
            registry.dsn_for("nowhere")
        self.assertEqual(registry.dsn_for("host=db dbname=app"), "host=db dbname=app")


class TestOrchestratorWiring(unittest.TestCase):
    """Test the orchestrator assembled by the container over fake transports."""

    def setUp(self):
        with patch.dict(os.environ, {}, clear=True):
            self.container = DIContainer().configure()
        self.query_executor = FakeQueryExecutor(responder=CatalogSimulator(SOURCE_CATALOG))
        self.container.override("snapshot_provider", build_provider())
        self.container.override("query_executor", self.query_executor)

    def test_process_plans_and_executes(self):
        """Test compare, generate and execute in one request."""
        # Arrange
        request = MigrationRequest("source", "target", execute=True)

        # Act
        response = self.container.get_orchestrator().process(request)

        # Assert
        self.assertEqual(len(response.comparison.differences), 7)
        self.assertEqual(len(response.script.steps), 4)
        self.assertEqual(response.execution.status, ExecutionStatus.COMPLETED)
        self.assertEqual({ref for ref, _ in self.query_executor.executed}, {"source"})
        self.assertIn("DROP TABLE IF EXISTS public.legacy CASCADE", self.query_executor.statements)

    def test_process_without_execution(self):
        response = self.container.get_orchestrator().process(MigrationRequest("source", "target"))

        self.assertIsNotNone(response.script)
        self.assertIsNone(response.execution)
        self.assertEqual(self.query_executor.executed, [])

    def test_identical_schemas_need_no_plan(self):
        response = self.container.get_orchestrator().process(MigrationRequest("target", "target", execute=True))

        self.assertEqual(response.comparison.differences, [])
        self.assertIsNone(response.script)


if __name__ == '__main__':
    unittest.main()
