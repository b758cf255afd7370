import logging
from typing import Dict, Optional, Sequence, Tuple

from migration_engine.domain.entities.schema import ObjectType
from migration_engine.domain.entities.difference import DifferenceKind, SchemaDifference
from migration_engine.domain.entities.migration import (
    GenerationResult, GenerationWarning, MigrationStep, Operation, RiskLevel,
)
from migration_engine.domain.exceptions import InputValidationError
from migration_engine.domain.services.sql_generation import GenerationContext, strategy_for

logger = logging.getLogger(__name__)

OPERATIONS = {
    DifferenceKind.ADDED: Operation.CREATE,
    DifferenceKind.REMOVED: Operation.DROP,
    DifferenceKind.MODIFIED: Operation.ALTER,
}

# seconds per operation, by object type
DURATIONS: Dict[str, Dict[Operation, int]] = {
    ObjectType.TABLE.value: {Operation.CREATE: 30, Operation.ALTER: 60, Operation.DROP: 15},
    ObjectType.INDEX.value: {Operation.CREATE: 45, Operation.ALTER: 30, Operation.DROP: 10},
    ObjectType.VIEW.value: {Operation.CREATE: 20, Operation.ALTER: 25, Operation.DROP: 5},
    ObjectType.FUNCTION.value: {Operation.CREATE: 15, Operation.ALTER: 20, Operation.DROP: 5},
    ObjectType.COLUMN.value: {Operation.CREATE: 10, Operation.ALTER: 25, Operation.DROP: 8},
}
DEFAULT_DURATION_SECONDS = 30


class StepSynthesizer:
    """
    Turns an ordered difference into a complete migration step.
    Single Responsibility: step assembly from generation strategies.
    """

    def synthesize(
        self,
        difference: SchemaDifference,
        order: int,
        context: GenerationContext,
        depends_on: Sequence[str] = (),
    ) -> MigrationStep:
        if not isinstance(order, int) or order < 1:
            raise InputValidationError(f"Step order must be a positive integer, got {order!r}")

        operation = OPERATIONS[difference.kind]
        strategy = strategy_for(difference.object_type)

        generated = self._forward(difference, context, strategy)
        rollback_sql = strategy.rollback_sql(difference, context)

        step = MigrationStep(
            id=f"step_{order}",
            order=order,
            name=f"{operation.value} {difference.object_type} {difference.object_name}",
            sql_script=generated.sql,
            object_type=difference.object_type,
            object_name=difference.object_name,
            schema=difference.schema,
            operation=operation,
            risk_level=self.assess_risk(difference),
            description=self._describe(difference, operation),
            depends_on=tuple(depends_on),
            estimated_duration_seconds=self.estimate_duration(difference.object_type, operation),
            rollback_sql=rollback_sql,
            verification_query=strategy.verification_query(difference),
            pre_conditions=strategy.pre_conditions(difference),
            post_conditions=strategy.post_conditions(difference),
            generation_warnings=generated.warnings,
        )

        if step.requires_manual_completion:
            logger.warning(
                f"[StepSynthesizer] {step.id} ({step.name}) needs manual completion: "
                f"{'; '.join(w.message for w in step.generation_warnings)}"
            )
        else:
            logger.debug(f"[StepSynthesizer] Generated {step.id}: {step.sql_script}")
        return step

    @staticmethod
    def assess_risk(difference: SchemaDifference) -> RiskLevel:
        object_type = difference.object_type.lower()
        if difference.kind == DifferenceKind.REMOVED:
            if object_type == ObjectType.TABLE.value:
                return RiskLevel.CRITICAL
            if object_type == ObjectType.COLUMN.value:
                return RiskLevel.HIGH
        if difference.kind == DifferenceKind.MODIFIED and object_type == ObjectType.TABLE.value:
            return RiskLevel.HIGH
        if difference.kind == DifferenceKind.ADDED:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def estimate_duration(object_type: str, operation: Operation) -> int:
        return DURATIONS.get(object_type.lower(), {}).get(operation, DEFAULT_DURATION_SECONDS)

    @staticmethod
    def _forward(difference, context, strategy) -> GenerationResult:
        try:
            return strategy.forward_sql(difference, context)
        except Exception as e:
            # a broken strategy must not abort the whole plan
            logger.error(f"[StepSynthesizer] SQL generation failed for {difference.key}: {e}")
            message = f"Error generating SQL for {difference.object_type} {difference.qualified_name}: {e}"
            return GenerationResult(f"-- {message}", (GenerationWarning("generation_failed", message),))

    @staticmethod
    def _describe(difference: SchemaDifference, operation: Operation) -> str:
        verb = {
            Operation.CREATE: "Create",
            Operation.DROP: "Drop",
            Operation.ALTER: "Alter",
        }[operation]
        description = f"{verb} {difference.object_type} {difference.qualified_name}"
        if difference.details:
            description += f" ({'; '.join(difference.details)})"
        return description
