"""Use case for reverting the completed steps of an execution."""
import logging
from dataclasses import replace
from typing import Optional

from migration_engine.application.dtos.migration_dto import ExecutionOptions
from migration_engine.application.use_case.execute_migration import MigrationExecutor
from migration_engine.domain.entities.execution import MigrationExecutionResult, StepStatus
from migration_engine.domain.entities.migration import (
    EnhancedMigrationScript, GenerationWarning, MigrationStep, Operation,
)
from migration_engine.domain.exceptions import InputValidationError
from migration_engine.domain.services.sql_tokenizer import SqlTokenizer

logger = logging.getLogger(__name__)

INVERSE = {
    Operation.CREATE: Operation.DROP,
    Operation.DROP: Operation.CREATE,
    Operation.ALTER: Operation.ALTER,
}


class RollbackMigrationUseCase:
    """
    Use case: Revert what an execution actually changed.
    Single Responsibility: Build and run the inverse of the completed steps.

    Completed steps are reverted newest first through the regular
    executor, so the rollback gets its own execution result and log.
    """

    def __init__(self, executor: MigrationExecutor, tokenizer: Optional[SqlTokenizer] = None):
        self._executor = executor
        self._tokenizer = tokenizer or SqlTokenizer()

    def execute(
        self,
        script: EnhancedMigrationScript,
        execution_result: MigrationExecutionResult,
        target_ref: str,
        options: Optional[ExecutionOptions] = None,
    ) -> MigrationExecutionResult:
        if execution_result.script_id != script.id:
            raise InputValidationError(
                f"Execution {execution_result.execution_id} belongs to script {execution_result.script_id}, "
                f"not {script.id}"
            )
        if execution_result.dry_run:
            raise InputValidationError("A dry-run execution changed nothing; there is nothing to roll back")

        completed = [
            step for step in script.steps
            if execution_result.step_statuses.get(step.id) == StepStatus.COMPLETED
        ]
        if not completed:
            raise InputValidationError(f"Execution {execution_result.execution_id} has no completed steps")

        steps = tuple(self._inverse(step, order) for order, step in enumerate(reversed(completed), start=1))
        rollback_script = replace(
            script,
            id=f"{script.id}-rollback",
            name=f"Rollback of {script.name}",
            steps=steps,
            validation_steps=(),
        )

        logger.info(
            f"[RollbackMigrationUseCase] Reverting {len(steps)} completed steps of execution "
            f"{execution_result.execution_id}"
        )
        return self._executor.execute(rollback_script, target_ref, options)

    def _inverse(self, step: MigrationStep, order: int) -> MigrationStep:
        sql = step.rollback_sql or ""
        warnings = ()
        if not self._tokenizer.split(sql) and self._tokenizer.split(step.sql_script):
            warnings = (GenerationWarning("no_rollback", f"No executable rollback SQL for {step.id}"),)

        return MigrationStep(
            id=f"rollback_{step.id}",
            order=order,
            name=f"Rollback {step.name}",
            sql_script=sql,
            object_type=step.object_type,
            object_name=step.object_name,
            schema=step.schema,
            operation=INVERSE[step.operation],
            risk_level=step.risk_level,
            description=f"Revert {step.id}",
            estimated_duration_seconds=step.estimated_duration_seconds,
            generation_warnings=warnings,
        )
