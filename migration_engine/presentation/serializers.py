"""JSON (de)serialisation of comparison results, scripts and execution results."""

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from migration_engine.domain.entities.schema import (
    DatabaseObject, ObjectDependency, Relationship, SchemaSnapshot,
)
from migration_engine.domain.entities.difference import (
    ComparisonMode, DifferenceKind, SchemaComparisonResult, SchemaDifference,
)
from migration_engine.domain.entities.execution import (
    ExecutionLogEntry, ExecutionStatus, LogLevel, MigrationExecutionResult, PerformanceMetrics, StepStatus,
)
from migration_engine.domain.entities.migration import (
    CircularDependency, EnhancedMigrationScript, GenerationWarning, MigrationMetadata, MigrationStep,
    Operation, PostCondition, PreCondition, RiskLevel, RollbackScript, RollbackStep, ValidationStep,
)
from migration_engine.domain.exceptions import InputValidationError


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums, datetimes and tuples to JSON types."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def comparison_to_dict(result: SchemaComparisonResult) -> Dict[str, Any]:
    data = to_jsonable(result)
    data["summary"] = {
        kind.value: sum(1 for d in result.differences if d.kind == kind) for kind in DifferenceKind
    }
    return data


def difference_from_dict(data: Dict[str, Any]) -> SchemaDifference:
    return SchemaDifference(
        kind=DifferenceKind(data["kind"]),
        object_type=data["object_type"],
        object_name=data["object_name"],
        schema=data["schema"],
        source_definition=data.get("source_definition"),
        target_definition=data.get("target_definition"),
        details=tuple(data.get("details", ())),
        parent=data.get("parent"),
    )


def comparison_from_dict(data: Dict[str, Any]) -> SchemaComparisonResult:
    return SchemaComparisonResult(
        comparison_id=data["comparison_id"],
        source_ref=data["source_ref"],
        target_ref=data["target_ref"],
        source_object_count=data["source_object_count"],
        target_object_count=data["target_object_count"],
        differences=[difference_from_dict(d) for d in data.get("differences", [])],
        comparison_mode=ComparisonMode(data["comparison_mode"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        execution_time_ms=data.get("execution_time_ms", 0.0),
    )


def script_to_dict(script: EnhancedMigrationScript) -> Dict[str, Any]:
    data = to_jsonable(script)
    data["rollback_script"]["sql"] = script.rollback_script.sql
    return data


def result_to_dict(result: MigrationExecutionResult) -> Dict[str, Any]:
    return to_jsonable(result)


def script_from_dict(data: Dict[str, Any]) -> EnhancedMigrationScript:
    """Rebuild a script saved with ``script_to_dict``."""
    try:
        return EnhancedMigrationScript(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            source_snapshot=_snapshot(data["source_snapshot"]),
            target_snapshot=_snapshot(data["target_snapshot"]),
            steps=tuple(_step(s) for s in data["steps"]),
            rollback_script=_rollback(data["rollback_script"]),
            risk_level=RiskLevel(data["risk_level"]),
            estimated_execution_minutes=data.get("estimated_execution_minutes", 0),
            version=data.get("version", "1.0.0"),
            validation_steps=tuple(ValidationStep(**v) for v in data.get("validation_steps", [])),
            metadata=_metadata(data.get("metadata")),
            generated_at=_datetime(data.get("generated_at")),
            circular_dependencies=tuple(
                CircularDependency(
                    objects=tuple(c["objects"]), severity=c.get("severity", "error"),
                    description=c.get("description", ""),
                )
                for c in data.get("circular_dependencies", [])
            ),
            warnings=tuple(data.get("warnings", ())),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InputValidationError(f"Malformed migration script document: {e}") from e


def _datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _snapshot(data: Dict[str, Any]) -> SchemaSnapshot:
    return SchemaSnapshot(
        connection_ref=data["connection_ref"],
        schema_hash=data["schema_hash"],
        object_count=data["object_count"],
        captured_at=datetime.fromisoformat(data["captured_at"]),
        objects=tuple(_object(o) for o in data.get("objects", [])),
        relationships=tuple(Relationship(**r) for r in data.get("relationships", [])),
    )


def _object(data: Dict[str, Any]) -> DatabaseObject:
    values = dict(data)
    values["dependencies"] = tuple(ObjectDependency(**d) for d in data.get("dependencies", []))
    values["dependents"] = tuple(ObjectDependency(**d) for d in data.get("dependents", []))
    return DatabaseObject(**values)


def _step(data: Dict[str, Any]) -> MigrationStep:
    values = dict(data)
    values["operation"] = Operation(data["operation"])
    values["risk_level"] = RiskLevel(data["risk_level"])
    values["depends_on"] = tuple(data.get("depends_on", ()))
    values["pre_conditions"] = tuple(PreCondition(**c) for c in data.get("pre_conditions", []))
    values["post_conditions"] = tuple(PostCondition(**c) for c in data.get("post_conditions", []))
    values["generation_warnings"] = tuple(GenerationWarning(**w) for w in data.get("generation_warnings", []))
    return MigrationStep(**values)


def _rollback(data: Dict[str, Any]) -> RollbackScript:
    steps = []
    for s in data.get("steps", []):
        values = dict(s)
        values["risk_level"] = RiskLevel(s["risk_level"])
        values["dependencies"] = tuple(s.get("dependencies", ()))
        values["verification_steps"] = tuple(s.get("verification_steps", ()))
        steps.append(RollbackStep(**values))
    return RollbackScript(
        is_complete=data["is_complete"],
        steps=tuple(steps),
        estimated_minutes=data["estimated_minutes"],
        success_rate_percent=data["success_rate_percent"],
        warnings=tuple(data.get("warnings", ())),
        limitations=tuple(data.get("limitations", ())),
    )


def _metadata(data: Optional[Dict[str, Any]]) -> MigrationMetadata:
    if not data:
        return MigrationMetadata()
    values = dict(data)
    values["tags"] = tuple(data.get("tags", ()))
    return MigrationMetadata(**values)


def result_from_dict(data: Dict[str, Any]) -> MigrationExecutionResult:
    """Rebuild an execution result saved with ``result_to_dict``."""
    try:
        metrics = data.get("performance_metrics") or {}
        return MigrationExecutionResult(
            execution_id=data["execution_id"],
            script_id=data["script_id"],
            start_time=datetime.fromisoformat(data["start_time"]),
            status=ExecutionStatus(data["status"]),
            end_time=_datetime(data.get("end_time")),
            current_step=data.get("current_step"),
            completed_steps=data.get("completed_steps", 0),
            failed_steps=data.get("failed_steps", 0),
            cancelled=data.get("cancelled", False),
            dry_run=data.get("dry_run", False),
            step_statuses={k: StepStatus(v) for k, v in data.get("step_statuses", {}).items()},
            execution_log=[
                ExecutionLogEntry(
                    timestamp=datetime.fromisoformat(e["timestamp"]),
                    level=LogLevel(e["level"]),
                    message=e["message"],
                    step_id=e.get("step_id"),
                    duration_ms=e.get("duration_ms"),
                    affected_rows=e.get("affected_rows"),
                )
                for e in data.get("execution_log", [])
            ],
            performance_metrics=PerformanceMetrics(**metrics),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InputValidationError(f"Malformed execution result document: {e}") from e
