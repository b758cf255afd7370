"""Dependency Injection Container."""

from typing import Any, Dict, Optional
import os
import logging

from migration_engine.domain.entities.difference import ComparisonMode

logger = logging.getLogger(__name__)

SOURCE_REF = "source"
TARGET_REF = "target"


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"[DIContainer] Ignoring non-integer {name}={value!r}")
        return None


class DIContainer:
    """
    Dependency Injection Container.
    Follows Dependency Inversion Principle.

    Connection references map to DSNs; ``source`` and ``target`` are
    read from MIGRATION_SOURCE_DSN and MIGRATION_TARGET_DSN when set.
    """

    def __init__(self):
        self._connections: Dict[str, str] = {}
        self._comparison_mode = ComparisonMode.STRICT
        self._stop_on_error = True
        self._statement_timeout_ms: Optional[int] = None
        self._max_graph_depth: Optional[int] = None
        self._services: Dict[str, Any] = {}

    def configure(
        self,
        connections: Optional[Dict[str, str]] = None,
        comparison_mode: Optional[str] = None,
        stop_on_error: Optional[bool] = None,
        statement_timeout_ms: Optional[int] = None,
        max_graph_depth: Optional[int] = None,
    ) -> "DIContainer":
        """Configure the container; environment values apply where arguments are omitted."""
        for ref, env_name in ((SOURCE_REF, "MIGRATION_SOURCE_DSN"), (TARGET_REF, "MIGRATION_TARGET_DSN")):
            dsn = os.getenv(env_name)
            if dsn:
                self._connections[ref] = dsn
        self._connections.update(connections or {})

        mode = comparison_mode or os.getenv("MIGRATION_COMPARISON_MODE", ComparisonMode.STRICT.value)
        try:
            self._comparison_mode = ComparisonMode(mode.strip().lower())
        except ValueError:
            logger.warning(f"[DIContainer] Unknown comparison mode {mode!r}; using strict")
            self._comparison_mode = ComparisonMode.STRICT

        if stop_on_error is None:
            stop_on_error = os.getenv("MIGRATION_STOP_ON_ERROR", "1") != "0"
        self._stop_on_error = stop_on_error
        self._statement_timeout_ms = statement_timeout_ms or _env_int("MIGRATION_STATEMENT_TIMEOUT_MS")
        self._max_graph_depth = max_graph_depth or _env_int("MIGRATION_MAX_GRAPH_DEPTH")

        logger.info(
            f"[DIContainer] Configured {len(self._connections)} connections, "
            f"{self._comparison_mode.value} comparison, stop_on_error={self._stop_on_error}"
        )
        return self

    @property
    def comparison_mode(self) -> ComparisonMode:
        return self._comparison_mode

    @property
    def stop_on_error(self) -> bool:
        return self._stop_on_error

    def override(self, name: str, service: Any) -> None:
        """Replace a service, e.g. with a fake in tests."""
        self._services[name] = service

    def get_connection_registry(self):
        if "connection_registry" not in self._services:
            from migration_engine.infrastructure.database.connection import ConnectionRegistry
            self._services["connection_registry"] = ConnectionRegistry(
                self._connections, statement_timeout_ms=self._statement_timeout_ms
            )
        return self._services["connection_registry"]

    def get_snapshot_provider(self):
        """Get schema snapshot provider."""
        if "snapshot_provider" not in self._services:
            from migration_engine.infrastructure.database.inspector import PostgresSnapshotProvider
            self._services["snapshot_provider"] = PostgresSnapshotProvider(self.get_connection_registry())
        return self._services["snapshot_provider"]

    def get_query_executor(self):
        """Get query transport."""
        if "query_executor" not in self._services:
            from migration_engine.infrastructure.database.query_executor import PostgresQueryExecutor
            self._services["query_executor"] = PostgresQueryExecutor(self.get_connection_registry())
        return self._services["query_executor"]

    def get_diff_engine(self):
        if "diff_engine" not in self._services:
            from migration_engine.domain.entities.difference import ComparisonOptions
            from migration_engine.domain.services.diff_engine import DiffEngine
            self._services["diff_engine"] = DiffEngine(ComparisonOptions(mode=self._comparison_mode))
        return self._services["diff_engine"]

    def get_dependency_grapher(self):
        if "dependency_grapher" not in self._services:
            from migration_engine.domain.services.dependency_graph import DependencyGrapher
            self._services["dependency_grapher"] = DependencyGrapher(max_depth=self._max_graph_depth)
        return self._services["dependency_grapher"]

    def get_sql_validator(self):
        if "sql_validator" not in self._services:
            from migration_engine.infrastructure.validators.sql_validator import SQLValidator
            self._services["sql_validator"] = SQLValidator()
        return self._services["sql_validator"]

    def get_compare_use_case(self):
        from migration_engine.application.use_case.compare_schemas import CompareSchemasUseCase
        return CompareSchemasUseCase(self.get_snapshot_provider(), self.get_diff_engine())

    def get_generate_use_case(self):
        from migration_engine.application.use_case.generate_migration import GenerateMigrationScriptUseCase
        from migration_engine.domain.services.change_orderer import ChangeOrderer
        from migration_engine.domain.services.rollback_planner import RollbackPlanner
        from migration_engine.domain.services.schema_hasher import SchemaHasher
        from migration_engine.domain.services.step_synthesizer import StepSynthesizer

        grapher = self.get_dependency_grapher()
        return GenerateMigrationScriptUseCase(
            snapshot_provider=self.get_snapshot_provider(),
            hasher=SchemaHasher(),
            grapher=grapher,
            orderer=ChangeOrderer(grapher),
            synthesizer=StepSynthesizer(),
            rollback_planner=RollbackPlanner(),
            sql_validator=self.get_sql_validator(),
        )

    def get_executor(self):
        from migration_engine.application.use_case.execute_migration import MigrationExecutor
        return MigrationExecutor(self.get_query_executor())

    def get_rollback_use_case(self):
        from migration_engine.application.use_case.rollback_migration import RollbackMigrationUseCase
        return RollbackMigrationUseCase(self.get_executor())

    def get_orchestrator(self):
        """Get migration orchestrator."""
        from migration_engine.application.orchestrators.migration_orchestrator import MigrationOrchestrator
        return MigrationOrchestrator(
            compare_use_case=self.get_compare_use_case(),
            generate_use_case=self.get_generate_use_case(),
            executor=self.get_executor(),
            rollback_use_case=self.get_rollback_use_case(),
        )
