"""SQL validation services."""

import logging
import sqlparse
from typing import List, Optional, Sequence, Tuple

from migration_engine.domain.entities.migration import MigrationStep, Operation, ValidationStep

logger = logging.getLogger(__name__)


class SQLValidator:
    """
    Validates generated migration SQL.
    Single Responsibility: SQL validation.
    """

    def __init__(self, dialect: str = "postgresql"):
        self._dialect = dialect

    def validate_syntax(self, sql: str) -> Tuple[bool, Optional[str]]:
        """
        Validate SQL syntax.
        Returns (is_valid, error_message).
        """
        if not sql or not sql.strip():
            return False, "Empty SQL statement"
        try:
            parsed = sqlparse.parse(sql)
        except Exception as e:
            return False, f"Syntax error: {e}"

        if not parsed:
            return False, "Empty SQL statement"

        for statement in parsed:
            tokens = self._keywords(statement)
            if "DROP" in tokens and "DATABASE" in tokens:
                return False, "DROP DATABASE is not allowed"

        return True, None

    def validate_safety(self, step: MigrationStep) -> Tuple[bool, List[str]]:
        """
        Check whether a step is safe to run unattended.
        Returns (is_safe, list_of_warnings).
        """
        warnings = []
        is_safe = True

        for statement in sqlparse.parse(step.sql_script or ""):
            if "TRUNCATE" in self._keywords(statement):
                warnings.append("TRUNCATE requires explicit approval")
                is_safe = False

        if step.operation == Operation.DROP and step.object_type in ("table", "column"):
            warnings.append(f"Destructive operation: DROP {step.object_type} {step.schema}.{step.object_name}")

        upper_sql = (step.sql_script or "").upper()
        if "ADD COLUMN" in upper_sql and "NOT NULL" in upper_sql and "DEFAULT" not in upper_sql:
            warnings.append("Adding NOT NULL column without DEFAULT may fail on existing data")

        return is_safe, warnings

    def build_validation_steps(self, steps: Sequence[MigrationStep]) -> List[ValidationStep]:
        """Syntax, safety and schema checks for every step of a plan."""
        validation_steps: List[ValidationStep] = []

        for step in steps:
            is_valid, error = self.validate_syntax(step.sql_script)
            validation_steps.append(ValidationStep(
                id=f"syntax_{step.id}",
                name=f"Syntax check for {step.name}",
                description="Parse the step SQL and reject forbidden statements",
                validation_type="syntax",
                severity="error",
                step_id=step.id,
                passed=is_valid,
                message=error,
            ))

            is_safe, warnings = self.validate_safety(step)
            if warnings:
                validation_steps.append(ValidationStep(
                    id=f"safety_{step.id}",
                    name=f"Safety review for {step.name}",
                    description="; ".join(warnings),
                    validation_type="security",
                    severity="error" if not is_safe else "warning",
                    automated=False,
                    step_id=step.id,
                    passed=is_safe,
                    message="; ".join(warnings),
                ))

            if step.requires_manual_completion:
                validation_steps.append(ValidationStep(
                    id=f"manual_{step.id}",
                    name=f"Complete SQL for {step.name}",
                    description="; ".join(w.message for w in step.generation_warnings),
                    validation_type="syntax",
                    severity="warning",
                    automated=False,
                    step_id=step.id,
                    passed=False,
                ))

            if step.verification_query:
                validation_steps.append(ValidationStep(
                    id=f"schema_{step.id}",
                    name=f"Verify {step.name}",
                    description=f"Check the catalog state after {step.id}",
                    validation_type="schema",
                    severity="warning",
                    step_id=step.id,
                    sql_query=step.verification_query,
                    expected_result="0" if step.operation == Operation.DROP else ">=1",
                ))

        failed = [v for v in validation_steps if v.passed is False and v.severity == "error"]
        logger.info(
            f"[SQLValidator] Built {len(validation_steps)} validation steps for {len(steps)} migration steps "
            f"({len(failed)} failing)"
        )
        return validation_steps

    @staticmethod
    def _keywords(statement) -> List[str]:
        return [t.value.upper() for t in statement.flatten() if not t.is_whitespace]
