"""Use case for generating a migration script."""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from migration_engine.application.dtos.migration_dto import GenerationOptions
from migration_engine.domain.entities.schema import ObjectType, SchemaSnapshot
from migration_engine.domain.entities.difference import DifferenceKind, SchemaDifference
from migration_engine.domain.entities.dependency import DependencyGraph
from migration_engine.domain.entities.migration import (
    EnhancedMigrationScript, MigrationMetadata, MigrationStep, RiskLevel,
)
from migration_engine.domain.exceptions import DependencyAnalysisError, InputValidationError
from migration_engine.domain.repositories.interfaces import ISchemaSnapshotProvider
from migration_engine.domain.services.change_orderer import ChangeOrderer
from migration_engine.domain.services.dependency_graph import DependencyGrapher
from migration_engine.domain.services.rollback_planner import RollbackPlanner
from migration_engine.domain.services.schema_hasher import SchemaHasher
from migration_engine.domain.services.sql_generation import GenerationContext
from migration_engine.domain.services.step_synthesizer import StepSynthesizer
from migration_engine.infrastructure.validators.sql_validator import SQLValidator

logger = logging.getLogger(__name__)

_TABLE_ATTACHED = (ObjectType.INDEX.value, ObjectType.TRIGGER.value)


def aggregate_risk(steps: Sequence[MigrationStep]) -> RiskLevel:
    """Any critical step is critical; more than three high steps is high; one is medium."""
    levels = [step.risk_level for step in steps]
    high = levels.count(RiskLevel.HIGH)
    if RiskLevel.CRITICAL in levels:
        return RiskLevel.CRITICAL
    if high > 3:
        return RiskLevel.HIGH
    if high >= 1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class GenerateMigrationScriptUseCase:
    """
    Use case: Generate an executable, reversible migration script.
    Single Responsibility: Generate migration artifacts.
    """

    def __init__(
        self,
        snapshot_provider: ISchemaSnapshotProvider,
        hasher: SchemaHasher,
        grapher: DependencyGrapher,
        orderer: ChangeOrderer,
        synthesizer: StepSynthesizer,
        rollback_planner: RollbackPlanner,
        sql_validator: SQLValidator,
    ):
        self._provider = snapshot_provider
        self._hasher = hasher
        self._grapher = grapher
        self._orderer = orderer
        self._synthesizer = synthesizer
        self._rollback_planner = rollback_planner
        self._sql_validator = sql_validator

    def execute(
        self,
        source_ref: str,
        target_ref: str,
        differences: Sequence[SchemaDifference],
        options: Optional[GenerationOptions] = None,
    ) -> EnhancedMigrationScript:
        """Execute migration generation."""
        if not source_ref or not target_ref:
            raise InputValidationError("Both source and target connection references are required")
        if not differences:
            raise InputValidationError("At least one schema difference is required to generate a migration")
        for difference in differences:
            if not isinstance(difference, SchemaDifference):
                raise InputValidationError(f"Not a SchemaDifference: {difference!r}")

        options = options or GenerationOptions()
        differences = self.collapse_table_columns(differences)
        logger.info(f"[GenerateMigrationScriptUseCase] Generating migration for {len(differences)} differences")

        source_snapshot = self.capture_snapshot(source_ref)
        target_snapshot = self.capture_snapshot(target_ref)

        warnings: List[str] = []
        graph, cycles = self._analyze(source_snapshot, target_snapshot, warnings)

        try:
            ordered = self._orderer.order(list(differences), graph)
        except DependencyAnalysisError as e:
            warnings.append(f"Dependency ordering skipped: {e}")
            ordered = self._orderer.order(list(differences))
            graph = None

        depends_on = self._step_dependencies(ordered, graph)
        context = GenerationContext(source_ref, target_ref, self._provider)
        steps = [
            self._synthesizer.synthesize(difference, order, context, depends_on.get(order, ()))
            for order, difference in enumerate(ordered, start=1)
        ]

        for step in steps:
            if step.requires_manual_completion:
                warnings.append(f"{step.id} ({step.name}) requires manual completion")

        if options.include_rollback:
            rollback_script = self._rollback_planner.plan(steps)
        else:
            rollback_script = self._rollback_planner.fallback()

        validation_steps = self._sql_validator.build_validation_steps(steps) if options.include_validation else []

        now = datetime.now()
        script = EnhancedMigrationScript(
            id=str(uuid.uuid4()),
            name=options.name or f"Migration Script {now.strftime('%Y-%m-%d')}",
            description=options.description or (
                f"Migration from {source_ref} to {target_ref} with {len(steps)} steps"
            ),
            source_snapshot=source_snapshot,
            target_snapshot=target_snapshot,
            steps=tuple(steps),
            rollback_script=rollback_script,
            risk_level=aggregate_risk(steps),
            estimated_execution_minutes=round(sum(s.estimated_duration_seconds for s in steps) / 60, 2),
            validation_steps=tuple(validation_steps),
            metadata=self._metadata(options),
            generated_at=now,
            circular_dependencies=tuple(cycles),
            warnings=tuple(warnings),
        )

        logger.info(
            f"[GenerateMigrationScriptUseCase] Script {script.id}: {len(steps)} steps, "
            f"risk {script.risk_level.value}, ~{script.estimated_execution_minutes} minutes, "
            f"rollback {'complete' if rollback_script.is_complete else 'manual'}"
        )
        return script

    def capture_snapshot(self, connection_ref: str) -> SchemaSnapshot:
        objects = self._provider.get_objects(connection_ref)
        relationships = self._provider.get_relationships(connection_ref)
        return SchemaSnapshot(
            connection_ref=connection_ref,
            schema_hash=self._hasher.hash(objects),
            object_count=len(objects),
            captured_at=datetime.now(),
            objects=tuple(objects),
            relationships=tuple(relationships),
        )

    def _analyze(self, source: SchemaSnapshot, target: SchemaSnapshot, warnings: List[str]):
        try:
            graph = self._grapher.build_graph(source.objects + target.objects)
            cycles = self._grapher.detect_cycles(graph)
        except DependencyAnalysisError as e:
            logger.warning(f"[GenerateMigrationScriptUseCase] Dependency analysis failed: {e}")
            warnings.append(f"Dependency analysis failed: {e}")
            return None, []

        if cycles:
            warnings.append(f"{len(cycles)} circular dependencies detected")
            warnings.extend(c.description for c in cycles)
        return graph, cycles

    @staticmethod
    def collapse_table_columns(differences: Sequence[SchemaDifference]) -> List[SchemaDifference]:
        """
        Column changes of a table that is itself created or dropped are part
        of that step. Indexes and triggers of a dropped table go with its
        ``DROP TABLE ... CASCADE``; this includes the index backing a primary
        key, which cannot be dropped on its own. A modified table whose
        columns changed is carried by its column steps instead, so each
        column change runs once.
        """
        whole_tables = {
            (d.kind, d.schema, d.object_name)
            for d in differences
            if d.object_type == ObjectType.TABLE.value and d.kind != DifferenceKind.MODIFIED
        }
        dropped_tables = {
            (schema, name) for kind, schema, name in whole_tables if kind == DifferenceKind.REMOVED
        }
        altered_columns = {
            (d.schema, d.parent)
            for d in differences
            if d.object_type == ObjectType.COLUMN.value and d.parent
        }
        kept = [
            d for d in differences
            if not (d.object_type == ObjectType.COLUMN.value and (d.kind, d.schema, d.parent) in whole_tables)
            and not (d.object_type in _TABLE_ATTACHED and (d.schema, d.parent) in dropped_tables)
            and not (
                d.object_type == ObjectType.TABLE.value
                and d.kind == DifferenceKind.MODIFIED
                and (d.schema, d.object_name) in altered_columns
            )
        ]
        if len(kept) < len(differences):
            logger.debug(
                f"[GenerateMigrationScriptUseCase] Folded {len(differences) - len(kept)} changes "
                f"into the steps of their tables"
            )
        return kept

    @staticmethod
    def _step_dependencies(
        ordered: List[SchemaDifference], graph: Optional[DependencyGraph]
    ) -> Dict[int, Sequence[str]]:
        """For each edge between two changed objects, the later step depends on the earlier one."""
        if graph is None:
            return {}
        position = {difference.key: order for order, difference in enumerate(ordered, start=1)}
        depends: Dict[int, Set[int]] = {}
        for edge in graph.edges:
            a, b = position.get(edge.from_key), position.get(edge.to_key)
            if a is None or b is None or a == b:
                continue
            earlier, later = min(a, b), max(a, b)
            depends.setdefault(later, set()).add(earlier)
        return {order: tuple(f"step_{o}" for o in sorted(deps)) for order, deps in depends.items()}

    @staticmethod
    def _metadata(options: GenerationOptions) -> MigrationMetadata:
        defaults = MigrationMetadata()
        return MigrationMetadata(
            author=options.author or defaults.author,
            business_justification=options.business_justification or defaults.business_justification,
            environment=options.environment or defaults.environment,
        )
