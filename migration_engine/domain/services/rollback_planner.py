import logging
from typing import List, Optional, Sequence

from migration_engine.domain.entities.migration import (
    MigrationStep, Operation, RiskLevel, RollbackScript, RollbackStep,
)
from migration_engine.domain.services.sql_tokenizer import SqlTokenizer

logger = logging.getLogger(__name__)

MANUAL_REVIEW_CHECKS = (
    "Document current database state before rollback",
    "Identify all objects modified by migration",
    "Plan rollback strategy for each object type",
    "Test rollback in development environment first",
    "Backup production data before rollback",
)

BACKUP_RESTORE_CHECKS = (
    "Verify backup contains pre-migration state",
    "Test backup restoration procedure",
    "Validate backup integrity",
    "Check for backup-related downtime",
)

FALLBACK_WARNINGS = (
    "No automatic rollback script could be generated",
    "Manual intervention required for safe rollback",
    "Consider data loss and downtime implications",
    "Test rollback procedure in non-production environment first",
)

FALLBACK_LIMITATIONS = (
    "Rollback strategy depends on specific migration operations",
    "Data loss may occur if migration modified existing data",
    "Dependent objects may be affected by rollback",
    "Application downtime may be required for complex rollbacks",
)


class RollbackPlanner:
    """
    Assembles the rollback script of a migration plan.
    Single Responsibility: rollback planning only.

    A plan is complete when every step carries rollback SQL with at least
    one executable statement. Anything less yields the manual fallback,
    which can always be built.
    """

    def __init__(self, tokenizer: Optional[SqlTokenizer] = None):
        self._tokenizer = tokenizer or SqlTokenizer()

    def plan(self, steps: Sequence[MigrationStep]) -> RollbackScript:
        if not steps:
            logger.info("[RollbackPlanner] No migration steps; using manual fallback")
            return self.fallback()

        missing = [step for step in steps if not self.is_derivable(step)]
        if missing:
            logger.warning(
                f"[RollbackPlanner] {len(missing)} of {len(steps)} steps have no executable rollback; "
                f"using manual fallback"
            )
            return self.fallback(missing)

        return self._complete(steps)

    def is_derivable(self, step: MigrationStep) -> bool:
        if self.is_no_op(step):
            return True
        if not step.rollback_sql:
            return False
        return bool(self._tokenizer.split(step.rollback_sql))

    def is_no_op(self, step: MigrationStep) -> bool:
        """A complete step without executable statements has nothing to revert."""
        return not step.requires_manual_completion and not self._tokenizer.split(step.sql_script)

    def fallback(self, missing: Sequence[MigrationStep] = ()) -> RollbackScript:
        """Manual review and backup restore; falls back again to a minimal plan."""
        try:
            warnings = list(FALLBACK_WARNINGS)
            warnings.extend(f"No rollback available for {step.id}: {step.name}" for step in missing)
            script = RollbackScript(
                is_complete=False,
                steps=(
                    RollbackStep(
                        order=1,
                        description="Manual rollback required - review migration steps",
                        estimated_minutes=60,
                        risk_level=RiskLevel.HIGH,
                        verification_steps=MANUAL_REVIEW_CHECKS,
                    ),
                    RollbackStep(
                        order=2,
                        description="Restore from database backup if available",
                        estimated_minutes=30,
                        risk_level=RiskLevel.MEDIUM,
                        dependencies=("1",),
                        verification_steps=BACKUP_RESTORE_CHECKS,
                    ),
                ),
                estimated_minutes=90,
                success_rate_percent=60,
                warnings=tuple(warnings),
                limitations=FALLBACK_LIMITATIONS,
            )
        except Exception as e:
            logger.error(f"[RollbackPlanner] Failed to build fallback rollback script: {e}")
            return RollbackScript(
                is_complete=False,
                steps=(),
                estimated_minutes=0,
                success_rate_percent=0,
                warnings=("Failed to generate default rollback script",),
                limitations=("Manual rollback required",),
            )

        logger.info(
            f"[RollbackPlanner] Manual rollback plan: {len(script.steps)} steps, "
            f"{script.estimated_minutes} minutes, {script.success_rate_percent}% success rate"
        )
        return script

    def _complete(self, steps: Sequence[MigrationStep]) -> RollbackScript:
        rollback_steps: List[RollbackStep] = []
        warnings: List[str] = []
        total_seconds = 0

        for order, step in enumerate(reversed(steps), start=1):
            rollback_steps.append(RollbackStep(
                order=order,
                description=f"Revert {step.name}",
                estimated_minutes=round(step.estimated_duration_seconds / 60, 2),
                risk_level=step.risk_level,
                sql=None if self.is_no_op(step) else step.rollback_sql,
                step_id=step.id,
                verification_steps=(step.verification_query,) if step.verification_query else (),
            ))
            total_seconds += step.estimated_duration_seconds
            if step.operation == Operation.DROP:
                warnings.append(
                    f"Reverting {step.id} re-creates {step.object_type} {step.schema}.{step.object_name} "
                    f"without its data"
                )

        levels = {step.risk_level for step in steps}
        if RiskLevel.CRITICAL in levels:
            success_rate = 75
        elif RiskLevel.HIGH in levels:
            success_rate = 85
        else:
            success_rate = 95

        logger.info(f"[RollbackPlanner] Complete rollback plan with {len(rollback_steps)} steps")
        return RollbackScript(
            is_complete=True,
            steps=tuple(rollback_steps),
            estimated_minutes=round(total_seconds / 60, 2),
            success_rate_percent=success_rate,
            warnings=tuple(warnings),
            limitations=("Data removed by the migration is not restored by rollback",) if warnings else (),
        )
