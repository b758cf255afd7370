"""Use case for executing a migration script step by step."""
import logging
import time
import uuid
from datetime import datetime
from typing import Optional, Set

from migration_engine.application.dtos.migration_dto import ExecutionOptions
from migration_engine.domain.entities.execution import (
    ExecutionStatus, LogLevel, MigrationExecutionResult, StepStatus,
)
from migration_engine.domain.entities.migration import EnhancedMigrationScript, MigrationStep
from migration_engine.domain.exceptions import (
    InputValidationError, MigrationStepError, PreConditionError, QueryExecutionError,
    StatementExecutionError,
)
from migration_engine.domain.repositories.interfaces import IQueryExecutor
from migration_engine.domain.services.condition_evaluator import ConditionEvaluator
from migration_engine.domain.services.sql_tokenizer import SqlTokenizer

logger = logging.getLogger(__name__)

MAX_LOGGED_SQL = 200


def truncate_sql(sql: str, limit: int = MAX_LOGGED_SQL) -> str:
    sql = " ".join(sql.split())
    return sql if len(sql) <= limit else sql[:limit] + "..."


class MigrationExecutor:
    """
    Use case: Execute a migration script against one database.
    Single Responsibility: Sequential step execution and bookkeeping.

    Steps run strictly in order. Each step checks its pre-conditions,
    runs its statements one by one, then checks its post-conditions.
    Every transition is appended to the execution log of the result.
    """

    def __init__(
        self,
        query_executor: IQueryExecutor,
        tokenizer: Optional[SqlTokenizer] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self._query_executor = query_executor
        self._tokenizer = tokenizer or SqlTokenizer()
        self._evaluator = evaluator or ConditionEvaluator()

    def execute(
        self,
        script: EnhancedMigrationScript,
        target_ref: str,
        options: Optional[ExecutionOptions] = None,
    ) -> MigrationExecutionResult:
        options = options or ExecutionOptions()
        self._validate(script, target_ref)

        simulate = options.dry_run or options.validate_only
        result = MigrationExecutionResult(
            execution_id=str(uuid.uuid4()),
            script_id=script.id,
            start_time=datetime.now(),
            dry_run=simulate,
            step_statuses={step.id: StepStatus.PENDING for step in script.steps},
        )
        result.status = ExecutionStatus.RUNNING
        result.log(LogLevel.INFO, f"Starting migration execution: {script.name}")
        logger.info(
            f"[MigrationExecutor] Executing {script.name} ({len(script.steps)} steps) on {target_ref}"
            f"{' [dry run]' if options.dry_run else ''}{' [validate only]' if options.validate_only else ''}"
        )

        executed: Set[str] = set()
        started = time.perf_counter()

        for step in script.steps:
            if options.cancel_event is not None and options.cancel_event.is_set():
                result.cancelled = True
                result.log(LogLevel.WARNING, f"Execution cancelled before step {step.order}: {step.name}", step.id)
                logger.warning(f"[MigrationExecutor] Cancelled before step {step.order}")
                break

            if step.id in executed:
                continue
            result.current_step = step.order

            if step.id in options.completed_step_ids:
                executed.add(step.id)
                result.step_statuses[step.id] = StepStatus.COMPLETED
                result.completed_steps += 1
                result.log(LogLevel.INFO, f"Step {step.order} already completed in a previous execution", step.id)
                continue

            result.step_statuses[step.id] = StepStatus.RUNNING
            result.log(LogLevel.INFO, f"Executing step {step.order}: {step.name}", step.id)
            step_started = time.perf_counter()

            try:
                if options.dry_run:
                    self._simulate_step(step, result)
                elif options.validate_only:
                    self._validate_step(step, target_ref, result)
                else:
                    self._execute_step(step, target_ref, result)
            except MigrationStepError as e:
                elapsed = time.perf_counter() - step_started
                executed.add(step.id)
                result.performance_metrics.step_durations_seconds[step.id] = round(elapsed, 4)
                result.step_statuses[step.id] = StepStatus.FAILED
                result.failed_steps += 1
                result.log(LogLevel.ERROR, f"Step {step.order} failed: {e}", step.id, duration_ms=elapsed * 1000)
                logger.error(f"[MigrationExecutor] Step {step.order} ({step.name}) failed: {e}")
                if options.stop_on_error:
                    result.log(LogLevel.WARNING, f"Stopping execution after failed step {step.order}", step.id)
                    break
                continue

            elapsed = time.perf_counter() - step_started
            executed.add(step.id)
            result.performance_metrics.step_durations_seconds[step.id] = round(elapsed, 4)
            result.step_statuses[step.id] = StepStatus.COMPLETED
            result.completed_steps += 1
            result.log(
                LogLevel.INFO, f"Step {step.order} completed successfully", step.id, duration_ms=elapsed * 1000
            )

        self._finish(result, started)
        return result

    def _execute_step(self, step: MigrationStep, target_ref: str, result: MigrationExecutionResult) -> None:
        self._check_pre_conditions(step, target_ref, result)

        statements = self._statements(step)
        for statement in statements:
            logger.debug(f"[MigrationExecutor] {step.id}: {truncate_sql(statement)}")
            try:
                query_result = self._query_executor.execute(target_ref, statement)
            except QueryExecutionError as e:
                raise StatementExecutionError(
                    f"Statement failed: {e} [{truncate_sql(statement)}]", step.id, statement
                ) from e

            metrics = result.performance_metrics
            metrics.statements_executed += 1
            metrics.rows_affected += max(query_result.row_count, 0)
            result.log(
                LogLevel.INFO,
                f"Executed: {truncate_sql(statement)}",
                step.id,
                duration_ms=query_result.execution_time_ms,
                affected_rows=query_result.row_count,
            )

        self._check_post_conditions(step, target_ref, result)

    def _validate_step(self, step: MigrationStep, target_ref: str, result: MigrationExecutionResult) -> None:
        """Read-only rehearsal: pre-conditions are checked, statements are not run."""
        self._check_pre_conditions(step, target_ref, result)
        statements = self._statements(step)
        result.log(LogLevel.INFO, f"[VALIDATE] Step {step.order}: {len(statements)} statements ready", step.id)

    def _simulate_step(self, step: MigrationStep, result: MigrationExecutionResult) -> None:
        statements = self._tokenizer.split(step.sql_script)
        result.log(LogLevel.INFO, f"[DRY RUN] Step {step.order} would execute {len(statements)} statements", step.id)
        for statement in statements:
            result.log(LogLevel.INFO, f"[DRY RUN] {truncate_sql(statement)}", step.id)

    def _statements(self, step: MigrationStep):
        statements = self._tokenizer.split(step.sql_script)
        if not statements and step.requires_manual_completion:
            raise MigrationStepError(
                f"Step {step.order} has no executable SQL and requires manual completion: "
                f"{'; '.join(w.message for w in step.generation_warnings)}",
                step.id,
            )
        return statements

    def _check_pre_conditions(self, step: MigrationStep, target_ref: str, result: MigrationExecutionResult) -> None:
        for condition in step.pre_conditions:
            if not condition.check_query:
                continue
            try:
                actual = self._query_executor.execute(target_ref, condition.check_query).first_cell
            except QueryExecutionError as e:
                if condition.expected_result is None:
                    result.log(LogLevel.WARNING, f"Could not evaluate '{condition.description}': {e}", step.id)
                    continue
                raise PreConditionError(
                    f"Pre-condition check failed: {condition.description}: {e}", step.id
                ) from e

            if condition.expected_result is None:
                result.log(LogLevel.INFO, f"{condition.description}: {actual}", step.id)
                continue
            if not self._evaluator.evaluate(actual, condition.expected_result):
                raise PreConditionError(
                    f"Pre-condition not met: {condition.description} "
                    f"(expected {condition.expected_result}, got {actual})",
                    step.id,
                )
            result.log(LogLevel.INFO, f"Pre-condition met: {condition.description}", step.id)

    def _check_post_conditions(self, step: MigrationStep, target_ref: str, result: MigrationExecutionResult) -> None:
        """Post-condition failures are recorded as warnings and never fail the step."""
        for condition in step.post_conditions:
            if not condition.check_query:
                continue
            try:
                actual = self._query_executor.execute(target_ref, condition.check_query).first_cell
            except QueryExecutionError as e:
                result.log(LogLevel.WARNING, f"Post-condition check failed: {condition.description}: {e}", step.id)
                continue
            if self._evaluator.evaluate(actual, condition.expected_result, condition.tolerance):
                result.log(LogLevel.INFO, f"Post-condition met: {condition.description}", step.id)
            else:
                result.log(
                    LogLevel.WARNING,
                    f"Post-condition not met: {condition.description} "
                    f"(expected {condition.expected_result}, got {actual})",
                    step.id,
                )

    @staticmethod
    def _validate(script: EnhancedMigrationScript, target_ref: str) -> None:
        if script is None or not script.id:
            raise InputValidationError("A migration script with an id is required")
        if not target_ref or not target_ref.strip():
            raise InputValidationError("target_ref must be a non-empty connection reference")
        if not script.steps:
            raise InputValidationError(f"Migration script {script.id} has no steps")

        seen = set()
        for expected_order, step in enumerate(script.steps, start=1):
            if step.id in seen:
                raise InputValidationError(f"Duplicate step id {step.id!r}")
            seen.add(step.id)
            if step.order != expected_order:
                raise InputValidationError(
                    f"Step orders must be sequential from 1: step {step.id!r} has order {step.order}, "
                    f"expected {expected_order}"
                )

    @staticmethod
    def _finish(result: MigrationExecutionResult, started: float) -> None:
        result.end_time = datetime.now()
        ok = result.failed_steps == 0 and not result.cancelled
        result.status = ExecutionStatus.COMPLETED if ok else ExecutionStatus.FAILED

        total = time.perf_counter() - started
        attempted = result.completed_steps + result.failed_steps
        metrics = result.performance_metrics
        metrics.total_execution_seconds = round(total, 4)
        metrics.average_step_seconds = round(total / attempted, 4) if attempted else 0.0

        result.log(
            LogLevel.INFO,
            f"Migration execution {result.status.value}: {result.completed_steps} completed, "
            f"{result.failed_steps} failed",
            duration_ms=total * 1000,
        )
        logger.info(
            f"[MigrationExecutor] Execution {result.execution_id} {result.status.value}: "
            f"{result.completed_steps} completed, {result.failed_steps} failed in {total:.2f}s"
        )
