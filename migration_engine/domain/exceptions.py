"""Error taxonomy of the migration engine."""

from typing import Optional


class MigrationEngineError(Exception):
    """Base class for every error raised by the engine."""


class InputValidationError(MigrationEngineError, ValueError):
    """Malformed arguments, raised before any side effect."""


class DependencyAnalysisError(MigrationEngineError):
    """Dependency traversal exceeded its configured depth bound."""


class QueryExecutionError(MigrationEngineError):
    """The query transport failed to execute a statement."""

    def __init__(self, message: str, sql: Optional[str] = None, connection_ref: Optional[str] = None):
        super().__init__(message)
        self.sql = sql
        self.connection_ref = connection_ref


class MigrationStepError(MigrationEngineError):
    """A migration step could not be completed."""

    def __init__(self, message: str, step_id: str):
        super().__init__(message)
        self.step_id = step_id


class PreConditionError(MigrationStepError):
    """A blocking pre-condition did not hold."""


class StatementExecutionError(MigrationStepError):
    """A statement of the step's script failed."""

    def __init__(self, message: str, step_id: str, statement: str):
        super().__init__(message, step_id)
        self.statement = statement
