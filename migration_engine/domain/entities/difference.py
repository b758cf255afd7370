from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from enum import Enum
from datetime import datetime

from migration_engine.domain.entities.schema import SYSTEM_SCHEMAS, object_key


class DifferenceKind(Enum):
    """Types of schema differences."""
    ADDED = "Added"
    REMOVED = "Removed"
    MODIFIED = "Modified"


class ComparisonMode(Enum):
    STRICT = "strict"
    LENIENT = "lenient"


@dataclass(frozen=True)
class SchemaDifference:
    """Represents a single difference between source and target schemas."""
    kind: DifferenceKind
    object_type: str
    object_name: str
    schema: str
    source_definition: Optional[str] = None
    target_definition: Optional[str] = None
    details: Tuple[str, ...] = field(default_factory=tuple)
    parent: Optional[str] = None

    @property
    def key(self) -> str:
        return object_key(self.object_type, self.schema, self.object_name, self.parent)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.object_name}"


@dataclass(frozen=True)
class ComparisonOptions:
    """Filters and policy applied before comparing two object sets."""
    mode: ComparisonMode = ComparisonMode.STRICT
    ignore_schemas: Tuple[str, ...] = field(default_factory=tuple)
    object_types: Tuple[str, ...] = field(default_factory=tuple)
    include_system_objects: bool = False
    system_schemas: Tuple[str, ...] = SYSTEM_SCHEMAS


@dataclass
class SchemaComparisonResult:
    """Outcome of comparing two live schemas."""
    comparison_id: str
    source_ref: str
    target_ref: str
    source_object_count: int
    target_object_count: int
    differences: List[SchemaDifference]
    comparison_mode: ComparisonMode
    created_at: datetime
    execution_time_ms: float = 0.0
