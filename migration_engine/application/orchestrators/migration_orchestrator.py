"""Main orchestrator for the migration process."""
import logging
from dataclasses import replace
from typing import Optional

from migration_engine.application.dtos.migration_dto import (
    ExecutionOptions, MigrationRequest, MigrationResponse,
)
from migration_engine.application.use_case.compare_schemas import CompareSchemasUseCase
from migration_engine.application.use_case.execute_migration import MigrationExecutor
from migration_engine.application.use_case.generate_migration import GenerateMigrationScriptUseCase
from migration_engine.application.use_case.rollback_migration import RollbackMigrationUseCase
from migration_engine.domain.entities.execution import MigrationExecutionResult, StepStatus
from migration_engine.domain.entities.migration import EnhancedMigrationScript

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Main orchestrator coordinating compare, generate, execute and rollback.
    Single Responsibility: Coordinate use cases.
    """

    def __init__(
        self,
        compare_use_case: CompareSchemasUseCase,
        generate_use_case: GenerateMigrationScriptUseCase,
        executor: MigrationExecutor,
        rollback_use_case: RollbackMigrationUseCase,
    ):
        self._compare = compare_use_case
        self._generate = generate_use_case
        self._executor = executor
        self._rollback = rollback_use_case

    def process(self, request: MigrationRequest) -> MigrationResponse:
        """Compare, plan and, when requested, execute against ``execution_ref``."""
        logger.info(f"[MigrationOrchestrator] Comparing {request.source_ref} with {request.target_ref}")
        comparison = self._compare.execute(request.source_ref, request.target_ref, request.comparison)
        response = MigrationResponse(comparison=comparison)

        if not comparison.differences:
            logger.info("[MigrationOrchestrator] Schemas are identical; no migration needed")
            return response

        response.script = self._generate.execute(
            request.source_ref, request.target_ref, comparison.differences, request.generation
        )

        if request.execute:
            execution_ref = request.execution_ref or request.source_ref
            response.execution = self._executor.execute(response.script, execution_ref, request.execution)
        else:
            logger.info("[MigrationOrchestrator] Plan generated; execution not requested")

        return response

    def resume(
        self,
        script: EnhancedMigrationScript,
        previous: MigrationExecutionResult,
        target_ref: str,
        options: Optional[ExecutionOptions] = None,
    ) -> MigrationExecutionResult:
        """Run the script again, skipping the steps ``previous`` completed."""
        done = frozenset(previous.steps_with_status(StepStatus.COMPLETED))
        if previous.dry_run:
            done = frozenset()
        options = replace(options or ExecutionOptions(), completed_step_ids=done)
        logger.info(f"[MigrationOrchestrator] Resuming {script.name}: {len(done)} steps already completed")
        return self._executor.execute(script, target_ref, options)

    def rollback(
        self,
        script: EnhancedMigrationScript,
        execution: MigrationExecutionResult,
        target_ref: str,
        options: Optional[ExecutionOptions] = None,
    ) -> MigrationExecutionResult:
        return self._rollback.execute(script, execution, target_ref, options)
