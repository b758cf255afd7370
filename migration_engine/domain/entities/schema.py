from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from enum import Enum
from datetime import datetime

from migration_engine.domain.exceptions import InputValidationError


SYSTEM_SCHEMAS = ("information_schema", "pg_catalog", "pg_toast")


class ObjectType(Enum):
    """Database object types with a dedicated SQL generation strategy."""
    TABLE = "table"
    COLUMN = "column"
    INDEX = "index"
    VIEW = "view"
    FUNCTION = "function"
    SEQUENCE = "sequence"
    TRIGGER = "trigger"

    @classmethod
    def parse(cls, value: str) -> Optional["ObjectType"]:
        """Return the matching member, or None for types handled generically."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# columns and triggers are only unique within their table
TABLE_SCOPED_TYPES = (ObjectType.COLUMN.value, ObjectType.TRIGGER.value)


def object_key(object_type: str, schema: str, name: str, parent: Optional[str] = None) -> str:
    """Identity key of a database object: ``type:schema:name`` (``type:schema:table.name`` when table-scoped)."""
    if parent and object_type in TABLE_SCOPED_TYPES:
        name = f"{parent}.{name}"
    return f"{object_type}:{schema}:{name}"


@dataclass(frozen=True)
class ObjectDependency:
    """Edge endpoint: the object this one depends on (or is depended on by)."""
    target_key: str
    kind: str = "depends_on"  # foreign_key, view_reference, owned_by, ...


@dataclass(frozen=True)
class DatabaseObject:
    """Immutable snapshot of one schema element at capture time."""
    object_type: str
    schema: str
    name: str
    owner: Optional[str] = None
    definition: Optional[str] = None
    size_in_bytes: Optional[int] = None
    parent: Optional[str] = None  # owning table for columns, indexes, triggers
    dependencies: Tuple[ObjectDependency, ...] = field(default_factory=tuple)
    dependents: Tuple[ObjectDependency, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for attr in ("object_type", "schema", "name"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise InputValidationError(f"DatabaseObject.{attr} must be a non-empty string")

    @property
    def key(self) -> str:
        return object_key(self.object_type, self.schema, self.name, self.parent)


@dataclass(frozen=True)
class ColumnInfo:
    """Column metadata as read from information_schema.columns."""
    name: str
    data_type: str
    nullable: bool = True
    default_value: Optional[str] = None
    max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None

    @property
    def type_definition(self) -> str:
        """Data type with its length/precision modifier."""
        data_type = self.data_type
        if self.max_length and data_type in ("character varying", "varchar", "character", "char"):
            return f"{data_type}({self.max_length})"
        if self.numeric_precision and self.numeric_scale is not None and data_type in ("numeric", "decimal"):
            return f"{data_type}({self.numeric_precision},{self.numeric_scale})"
        return data_type

    @property
    def definition(self) -> str:
        """Type, nullability and default, without the column name."""
        sql = self.type_definition
        if not self.nullable:
            sql += " NOT NULL"
        if self.default_value:
            sql += f" DEFAULT {self.default_value}"
        return sql


@dataclass(frozen=True)
class Relationship:
    """Foreign key relationship captured with a snapshot."""
    constraint_name: str
    table_schema: str
    table_name: str
    column_name: str
    foreign_table_schema: str
    foreign_table_name: str
    foreign_column_name: str
    relationship_type: str = "foreign_key"


@dataclass(frozen=True)
class SchemaSnapshot:
    """Captured set of objects from one database at one point in time."""
    connection_ref: str
    schema_hash: str
    object_count: int
    captured_at: datetime
    objects: Tuple[DatabaseObject, ...] = field(default_factory=tuple)
    relationships: Tuple[Relationship, ...] = field(default_factory=tuple)

    def find(self, key: str) -> Optional[DatabaseObject]:
        for obj in self.objects:
            if obj.key == key:
                return obj
        return None

    def keys(self) -> List[str]:
        return [obj.key for obj in self.objects]
