import logging
import re
from typing import Dict, Iterable, List, Optional

from migration_engine.domain.entities.schema import DatabaseObject
from migration_engine.domain.entities.difference import (
    ComparisonMode, ComparisonOptions, DifferenceKind, SchemaDifference,
)
from migration_engine.domain.exceptions import InputValidationError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_TRAILING_SEMICOLON = re.compile(r";\s*$")


class DiffEngine:
    """
    Computes typed differences between a source and a target object set.
    Single Responsibility: Only handles diff computation.
    """

    def __init__(self, default_options: Optional[ComparisonOptions] = None):
        self._default_options = default_options or ComparisonOptions()

    def diff(
        self,
        source: Iterable[DatabaseObject],
        target: Iterable[DatabaseObject],
        options: Optional[ComparisonOptions] = None,
    ) -> List[SchemaDifference]:
        """
        Compare two object collections keyed by identity.
        Objects only in source are Removed, only in target are Added,
        in both and differing under the comparison mode are Modified.
        Output is sorted by identity key.
        """
        options = options or self._default_options
        if not isinstance(options.mode, ComparisonMode):
            raise InputValidationError(f"Unknown comparison mode: {options.mode!r}")

        source_map = self._index(self.filter_objects(self._checked(source, "source"), options), "source")
        target_map = self._index(self.filter_objects(self._checked(target, "target"), options), "target")

        differences: List[SchemaDifference] = []

        for key, source_obj in source_map.items():
            target_obj = target_map.get(key)
            if target_obj is None:
                differences.append(SchemaDifference(
                    kind=DifferenceKind.REMOVED,
                    object_type=source_obj.object_type,
                    object_name=source_obj.name,
                    schema=source_obj.schema,
                    source_definition=source_obj.definition,
                    details=("Object exists in source but not in target",),
                    parent=source_obj.parent,
                ))
            elif self.objects_differ(source_obj, target_obj, options.mode):
                differences.append(SchemaDifference(
                    kind=DifferenceKind.MODIFIED,
                    object_type=source_obj.object_type,
                    object_name=source_obj.name,
                    schema=source_obj.schema,
                    source_definition=source_obj.definition,
                    target_definition=target_obj.definition,
                    details=tuple(self._difference_details(source_obj, target_obj, options.mode)),
                    parent=target_obj.parent or source_obj.parent,
                ))

        for key, target_obj in target_map.items():
            if key not in source_map:
                differences.append(SchemaDifference(
                    kind=DifferenceKind.ADDED,
                    object_type=target_obj.object_type,
                    object_name=target_obj.name,
                    schema=target_obj.schema,
                    target_definition=target_obj.definition,
                    details=("Object exists in target but not in source",),
                    parent=target_obj.parent,
                ))

        differences.sort(key=lambda d: d.key)

        logger.info(
            f"[DiffEngine] {options.mode.value} comparison: {len(source_map)} source vs "
            f"{len(target_map)} target objects -> {len(differences)} differences"
        )
        return differences

    def filter_objects(
        self, objects: Iterable[DatabaseObject], options: ComparisonOptions
    ) -> List[DatabaseObject]:
        """Apply schema exclusions, the type allow-list and system schema filtering."""
        filtered = list(objects)

        if options.ignore_schemas:
            filtered = [o for o in filtered if o.schema not in options.ignore_schemas]

        if options.object_types:
            filtered = [o for o in filtered if o.object_type in options.object_types]

        if not options.include_system_objects:
            filtered = [o for o in filtered if o.schema not in options.system_schemas]

        return filtered

    def objects_differ(self, source: DatabaseObject, target: DatabaseObject, mode: ComparisonMode) -> bool:
        """Check if two objects differ based on comparison mode."""
        if mode == ComparisonMode.STRICT:
            return (
                source.definition != target.definition
                or source.owner != target.owner
                or source.size_in_bytes != target.size_in_bytes
            )
        return self.normalize_definition(source.definition) != self.normalize_definition(target.definition)

    @staticmethod
    def normalize_definition(definition: Optional[str]) -> str:
        """Collapse whitespace, drop one trailing semicolon, trim and lowercase."""
        normalized = _WHITESPACE.sub(" ", definition or "")
        normalized = _TRAILING_SEMICOLON.sub("", normalized, count=1)
        return normalized.strip().lower()

    @staticmethod
    def _checked(objects: Iterable[DatabaseObject], side: str) -> List[DatabaseObject]:
        checked = list(objects)
        for obj in checked:
            if not isinstance(obj, DatabaseObject):
                raise InputValidationError(f"{side} contains a non-DatabaseObject item: {obj!r}")
        return checked

    def _index(self, objects: List[DatabaseObject], side: str) -> Dict[str, DatabaseObject]:
        indexed: Dict[str, DatabaseObject] = {}
        for obj in objects:
            if obj.key in indexed:
                logger.debug(f"[DiffEngine] Duplicate {side} object {obj.key}; keeping the last one")
            indexed[obj.key] = obj
        return indexed

    def _difference_details(
        self, source: DatabaseObject, target: DatabaseObject, mode: ComparisonMode
    ) -> List[str]:
        details = []
        if mode == ComparisonMode.LENIENT:
            return ["Definition differs (ignoring formatting)"]

        if source.definition != target.definition:
            details.append("Definition differs")
        if source.owner != target.owner:
            details.append(f"Owner differs: {source.owner} vs {target.owner}")
        if source.size_in_bytes != target.size_in_bytes:
            details.append(f"Size differs: {source.size_in_bytes} vs {target.size_in_bytes} bytes")
        return details
