from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from enum import Enum
from datetime import datetime

from migration_engine.domain.entities.schema import SchemaSnapshot


class Operation(Enum):
    CREATE = "CREATE"
    ALTER = "ALTER"
    DROP = "DROP"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class GenerationWarning:
    """Caveat attached to a generated statement that needs human attention."""
    code: str  # placeholder, catalog_miss, generation_failed, ...
    message: str


@dataclass(frozen=True)
class GenerationResult:
    """SQL produced by a generation strategy, possibly with caveats."""
    sql: str
    warnings: Tuple[GenerationWarning, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.warnings

    @classmethod
    def placeholder(cls, message: str, code: str = "placeholder") -> "GenerationResult":
        """Commented statement standing in for SQL that must be completed by hand."""
        return cls(sql=f"-- {message}", warnings=(GenerationWarning(code, message),))


@dataclass(frozen=True)
class PreCondition:
    """Blocking assertion checked before a step runs."""
    description: str
    check_query: Optional[str] = None
    expected_result: Optional[str] = None
    condition_type: str = "custom"  # data_condition, permission_check, custom


@dataclass(frozen=True)
class PostCondition:
    """Advisory assertion checked after a step runs."""
    description: str
    check_query: Optional[str] = None
    expected_result: Optional[str] = None
    condition_type: str = "custom"  # row_count, data_integrity, performance_check, custom
    tolerance: Optional[float] = None


@dataclass(frozen=True)
class MigrationStep:
    """One atomic, ordered unit of schema change."""
    id: str
    order: int
    name: str
    sql_script: str
    object_type: str
    object_name: str
    schema: str
    operation: Operation
    risk_level: RiskLevel
    description: str = ""
    depends_on: Tuple[str, ...] = field(default_factory=tuple)
    estimated_duration_seconds: int = 30
    rollback_sql: Optional[str] = None
    verification_query: Optional[str] = None
    pre_conditions: Tuple[PreCondition, ...] = field(default_factory=tuple)
    post_conditions: Tuple[PostCondition, ...] = field(default_factory=tuple)
    generation_warnings: Tuple[GenerationWarning, ...] = field(default_factory=tuple)

    @property
    def requires_manual_completion(self) -> bool:
        return bool(self.generation_warnings)


@dataclass(frozen=True)
class RollbackStep:
    order: int
    description: str
    estimated_minutes: float
    risk_level: RiskLevel
    sql: Optional[str] = None
    step_id: Optional[str] = None  # migration step this one reverts
    dependencies: Tuple[str, ...] = field(default_factory=tuple)
    verification_steps: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RollbackScript:
    is_complete: bool
    steps: Tuple[RollbackStep, ...]
    estimated_minutes: float
    success_rate_percent: int
    warnings: Tuple[str, ...] = field(default_factory=tuple)
    limitations: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def sql(self) -> str:
        """Executable rollback statements, in rollback order."""
        return "\n\n".join(step.sql for step in self.steps if step.sql)


@dataclass(frozen=True)
class ValidationStep:
    id: str
    name: str
    description: str
    validation_type: str  # syntax, schema, data, performance, security
    severity: str = "error"  # error, warning, info
    automated: bool = True
    step_id: Optional[str] = None
    sql_query: Optional[str] = None
    expected_result: Optional[str] = None
    passed: Optional[bool] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class MigrationMetadata:
    author: str = "migration-engine"
    tags: Tuple[str, ...] = ("automated", "schema-comparison")
    business_justification: str = "Schema synchronization between environments"
    change_type: str = "feature"  # hotfix, feature, refactoring, optimization
    environment: str = "production"  # development, staging, production
    testing_required: bool = True
    documentation_updated: bool = False
    reviewed_by: Optional[str] = None
    approved_by: Optional[str] = None


@dataclass(frozen=True)
class CircularDependency:
    """A dependency cycle found while ordering changes."""
    objects: Tuple[str, ...]
    severity: str = "error"
    description: str = ""


@dataclass(frozen=True)
class EnhancedMigrationScript:
    """Aggregate root: an ordered, validated, reversible migration plan."""
    id: str
    name: str
    description: str
    source_snapshot: SchemaSnapshot
    target_snapshot: SchemaSnapshot
    steps: Tuple[MigrationStep, ...]
    rollback_script: RollbackScript
    risk_level: RiskLevel
    estimated_execution_minutes: float
    version: str = "1.0.0"
    validation_steps: Tuple[ValidationStep, ...] = field(default_factory=tuple)
    metadata: MigrationMetadata = field(default_factory=MigrationMetadata)
    generated_at: Optional[datetime] = None
    circular_dependencies: Tuple[CircularDependency, ...] = field(default_factory=tuple)
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    def step(self, step_id: str) -> Optional[MigrationStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def manual_steps(self) -> List[MigrationStep]:
        return [s for s in self.steps if s.requires_manual_completion]
