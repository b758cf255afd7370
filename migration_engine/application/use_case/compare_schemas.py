"""Use case for comparing two live schemas."""
import logging
import time
import uuid
from datetime import datetime
from typing import Optional

from migration_engine.domain.entities.difference import ComparisonOptions, SchemaComparisonResult
from migration_engine.domain.exceptions import InputValidationError
from migration_engine.domain.repositories.interfaces import ISchemaSnapshotProvider
from migration_engine.domain.services.diff_engine import DiffEngine

logger = logging.getLogger(__name__)


class CompareSchemasUseCase:
    """
    Use case: Compare source and target schemas.
    Single Responsibility: Produce a comparison result.
    """

    def __init__(self, snapshot_provider: ISchemaSnapshotProvider, diff_engine: DiffEngine):
        self._provider = snapshot_provider
        self._diff_engine = diff_engine

    def execute(
        self, source_ref: str, target_ref: str, options: Optional[ComparisonOptions] = None
    ) -> SchemaComparisonResult:
        if not source_ref or not target_ref:
            raise InputValidationError("Both source and target connection references are required")

        options = options or ComparisonOptions()
        started = time.perf_counter()

        source_objects = self._provider.get_objects(source_ref)
        target_objects = self._provider.get_objects(target_ref)
        differences = self._diff_engine.diff(source_objects, target_objects, options)

        result = SchemaComparisonResult(
            comparison_id=str(uuid.uuid4()),
            source_ref=source_ref,
            target_ref=target_ref,
            source_object_count=len(source_objects),
            target_object_count=len(target_objects),
            differences=differences,
            comparison_mode=options.mode,
            created_at=datetime.now(),
            execution_time_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        logger.info(
            f"[CompareSchemasUseCase] {source_ref} vs {target_ref}: "
            f"{len(differences)} differences in {result.execution_time_ms}ms"
        )
        return result
