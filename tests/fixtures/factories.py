from datetime import datetime
from typing import Iterable, Optional, Sequence

from migration_engine.domain.entities.schema import (
    DatabaseObject, ObjectDependency, SchemaSnapshot, object_key,
)
from migration_engine.domain.entities.difference import DifferenceKind, SchemaDifference
from migration_engine.domain.entities.migration import (
    EnhancedMigrationScript, MigrationStep, Operation, PostCondition, PreCondition, RiskLevel,
)
from migration_engine.domain.services.rollback_planner import RollbackPlanner


class MigrationDataFactory:
    """Factory for creating test data objects."""

    @staticmethod
    def table(name: str, schema: str = "public", definition: Optional[str] = None,
              owner: str = "postgres", size: int = 8192, depends_on: Iterable[str] = ()) -> DatabaseObject:
        return DatabaseObject(
            object_type="table",
            schema=schema,
            name=name,
            owner=owner,
            definition=definition or f"CREATE TABLE {schema}.{name} (\n  id integer NOT NULL\n)",
            size_in_bytes=size,
            dependencies=tuple(
                ObjectDependency(object_key("table", schema, t), "foreign_key") for t in depends_on
            ),
        )

    @staticmethod
    def column(table: str, name: str, definition: str = "integer", schema: str = "public") -> DatabaseObject:
        return DatabaseObject(
            object_type="column",
            schema=schema,
            name=name,
            definition=definition,
            parent=table,
            dependencies=(ObjectDependency(object_key("table", schema, table), "column_of"),),
        )

    @staticmethod
    def view(name: str, body: str, reads: Iterable[str] = (), schema: str = "public") -> DatabaseObject:
        return DatabaseObject(
            object_type="view",
            schema=schema,
            name=name,
            owner="postgres",
            definition=body,
            dependencies=tuple(ObjectDependency(key, "view_reference") for key in reads),
        )

    @staticmethod
    def index(name: str, table: str, definition: Optional[str] = None, schema: str = "public") -> DatabaseObject:
        return DatabaseObject(
            object_type="index",
            schema=schema,
            name=name,
            definition=definition or f"CREATE INDEX {name} ON {schema}.{table} USING btree (id)",
            parent=table,
            dependencies=(ObjectDependency(object_key("table", schema, table), "index_on"),),
        )

    @staticmethod
    def difference(kind: DifferenceKind, object_type: str, name: str, schema: str = "public",
                   source_definition: Optional[str] = None, target_definition: Optional[str] = None,
                   parent: Optional[str] = None) -> SchemaDifference:
        return SchemaDifference(
            kind=kind,
            object_type=object_type,
            object_name=name,
            schema=schema,
            source_definition=source_definition,
            target_definition=target_definition,
            parent=parent,
        )

    @staticmethod
    def step(order: int, sql: str = "SELECT 1;", step_id: Optional[str] = None,
             operation: Operation = Operation.CREATE, risk: RiskLevel = RiskLevel.LOW,
             rollback_sql: Optional[str] = "SELECT 0;",
             pre_conditions: Sequence[PreCondition] = (),
             post_conditions: Sequence[PostCondition] = ()) -> MigrationStep:
        return MigrationStep(
            id=step_id or f"step_{order}",
            order=order,
            name=f"{operation.value} table t{order}",
            sql_script=sql,
            object_type="table",
            object_name=f"t{order}",
            schema="public",
            operation=operation,
            risk_level=risk,
            rollback_sql=rollback_sql,
            pre_conditions=tuple(pre_conditions),
            post_conditions=tuple(post_conditions),
        )

    @staticmethod
    def snapshot(ref: str, objects: Sequence[DatabaseObject] = ()) -> SchemaSnapshot:
        return SchemaSnapshot(
            connection_ref=ref,
            schema_hash="0" * 64,
            object_count=len(objects),
            captured_at=datetime(2024, 1, 1),
            objects=tuple(objects),
        )

    @classmethod
    def script(cls, steps: Sequence[MigrationStep], script_id: str = "script-1") -> EnhancedMigrationScript:
        return EnhancedMigrationScript(
            id=script_id,
            name="Test Migration",
            description="Migration built for tests",
            source_snapshot=cls.snapshot("source"),
            target_snapshot=cls.snapshot("target"),
            steps=tuple(steps),
            rollback_script=RollbackPlanner().plan(steps),
            risk_level=RiskLevel.LOW,
            estimated_execution_minutes=1.0,
            generated_at=datetime(2024, 1, 1),
        )
