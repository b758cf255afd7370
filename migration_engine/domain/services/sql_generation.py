"""Per-object-type SQL generation strategies."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from migration_engine.domain.entities.schema import ColumnInfo, ObjectType
from migration_engine.domain.entities.difference import DifferenceKind, SchemaDifference
from migration_engine.domain.entities.migration import (
    GenerationResult, PostCondition, PreCondition,
)
from migration_engine.domain.exceptions import MigrationEngineError
from migration_engine.domain.repositories.interfaces import ISchemaSnapshotProvider

logger = logging.getLogger(__name__)

_PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")
_NOT_NULL = re.compile(r"\s*\bNOT\s+NULL\b", re.IGNORECASE)
_DEFAULT = re.compile(r"\s+DEFAULT\s+(.+)$", re.IGNORECASE | re.DOTALL)
_TRAILING_NULL = re.compile(r"\s+NULL$", re.IGNORECASE)


def quote_identifier(name: str) -> str:
    """Double-quote an identifier unless it is a plain lowercase name."""
    if _PLAIN_IDENTIFIER.match(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def qualified(schema: str, name: str) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def terminate(sql: str) -> str:
    """Ensure exactly one trailing semicolon."""
    return sql.strip().rstrip(";").rstrip() + ";"


@dataclass(frozen=True)
class ColumnSpec:
    """Type, nullability and default parsed from a column definition."""
    data_type: str
    nullable: bool = True
    default: Optional[str] = None

    @classmethod
    def parse(cls, definition: str) -> "ColumnSpec":
        text = definition.strip().rstrip(";").strip()
        nullable = True
        if _NOT_NULL.search(text):
            nullable = False
            text = _NOT_NULL.sub("", text)
        default = None
        match = _DEFAULT.search(text)
        if match:
            default = match.group(1).strip()
            text = text[:match.start()]
        text = _TRAILING_NULL.sub("", text.strip())
        return cls(data_type=text.strip(), nullable=nullable, default=default)

    @classmethod
    def from_column(cls, column: ColumnInfo) -> "ColumnSpec":
        return cls(column.type_definition, column.nullable, column.default_value)


def column_changes(table: str, column: str, before: ColumnSpec, after: ColumnSpec) -> List[str]:
    """ALTER COLUMN statements turning ``before`` into ``after``."""
    prefix = f"ALTER TABLE {table} ALTER COLUMN {quote_identifier(column)}"
    statements = []
    if before.data_type.lower() != after.data_type.lower():
        statements.append(
            f"{prefix} TYPE {after.data_type} USING {quote_identifier(column)}::{after.data_type};"
        )
    if before.nullable != after.nullable:
        statements.append(f"{prefix} {'DROP' if after.nullable else 'SET'} NOT NULL;")
    if before.default != after.default:
        if after.default is None:
            statements.append(f"{prefix} DROP DEFAULT;")
        else:
            statements.append(f"{prefix} SET DEFAULT {after.default};")
    return statements


@dataclass(frozen=True)
class GenerationContext:
    """Connections and catalog a strategy may consult."""
    source_ref: str
    target_ref: str
    catalog: Optional[ISchemaSnapshotProvider] = None

    def reversed(self) -> "GenerationContext":
        return GenerationContext(self.target_ref, self.source_ref, self.catalog)


def _reverse(difference: SchemaDifference) -> SchemaDifference:
    """The same difference seen from target to source."""
    kind = {
        DifferenceKind.ADDED: DifferenceKind.REMOVED,
        DifferenceKind.REMOVED: DifferenceKind.ADDED,
    }.get(difference.kind, difference.kind)
    return SchemaDifference(
        kind=kind,
        object_type=difference.object_type,
        object_name=difference.object_name,
        schema=difference.schema,
        source_definition=difference.target_definition,
        target_definition=difference.source_definition,
        details=difference.details,
        parent=difference.parent,
    )


class ObjectSqlStrategy(ABC):
    """
    SQL generation for one kind of database object.
    Single Responsibility: statement text for CREATE, ALTER, DROP and their inverses.

    Strategies never raise for catalog problems: a failed lookup becomes a
    commented placeholder carrying a ``GenerationWarning``.
    """

    keyword = "OBJECT"

    @abstractmethod
    def create_sql(self, difference: SchemaDifference, context: GenerationContext) -> GenerationResult:
        pass

    @abstractmethod
    def alter_sql(self, difference: SchemaDifference, context: GenerationContext) -> GenerationResult:
        pass

    def drop_sql(self, difference: SchemaDifference) -> GenerationResult:
        return GenerationResult(
            f"DROP {self.keyword} IF EXISTS {qualified(difference.schema, difference.object_name)} CASCADE;"
        )

    def existence_query(self, difference: SchemaDifference) -> Optional[str]:
        """Query returning the number of matching objects, if the type is queryable."""
        return None

    def forward_sql(self, difference: SchemaDifference, context: GenerationContext) -> GenerationResult:
        """Dispatch on the difference kind."""
        if difference.kind == DifferenceKind.ADDED:
            return self.create_sql(difference, context)
        if difference.kind == DifferenceKind.REMOVED:
            return self.drop_sql(difference)
        return self.alter_sql(difference, context)

    def rollback_sql(self, difference: SchemaDifference, context: GenerationContext) -> str:
        """Inverse of ``forward_sql``; never raises."""
        try:
            if difference.kind == DifferenceKind.ADDED:
                return self.drop_sql(difference).sql
            if difference.kind == DifferenceKind.REMOVED:
                return self.recreate_sql(difference)
            return self.alter_sql(_reverse(difference), context.reversed()).sql
        except Exception as e:
            logger.error(f"[{type(self).__name__}] Rollback generation failed for {difference.key}: {e}")
            return f"-- Error generating rollback SQL: {e}"

    def recreate_sql(self, difference: SchemaDifference) -> str:
        """Statement restoring a dropped object from its captured definition."""
        definition = difference.source_definition
        if definition and definition.lstrip().upper().startswith("CREATE"):
            return terminate(definition)
        return f"-- Rollback not available for DROP {self.keyword} without backup"

    def pre_conditions(self, difference: SchemaDifference) -> Tuple[PreCondition, ...]:
        query = self.existence_query(difference)
        if query is None:
            return ()
        label = f"{self.keyword.lower()} {difference.qualified_name}"
        if difference.kind == DifferenceKind.ADDED:
            return (PreCondition(f"{label} does not exist yet", query, "0", "data_condition"),)
        return (PreCondition(f"{label} exists", query, ">=1", "data_condition"),)

    def post_conditions(self, difference: SchemaDifference) -> Tuple[PostCondition, ...]:
        query = self.existence_query(difference)
        if query is None:
            return ()
        label = f"{self.keyword.lower()} {difference.qualified_name}"
        if difference.kind == DifferenceKind.REMOVED:
            return (PostCondition(f"{label} no longer exists", query, "0", "data_integrity"),)
        return (PostCondition(f"{label} exists", query, ">=1", "data_integrity"),)

    def verification_query(self, difference: SchemaDifference) -> Optional[str]:
        return self.existence_query(difference)

    def _manual(self, action: str, difference: SchemaDifference) -> GenerationResult:
        return GenerationResult.placeholder(
            f"{action} statement for {difference.object_type} {difference.qualified_name} needs manual definition"
        )

    def _lookup_failed(self, action: str, difference: SchemaDifference, error: Exception) -> GenerationResult:
        logger.warning(f"[{type(self).__name__}] Catalog lookup failed for {difference.key}: {error}")
        return GenerationResult.placeholder(
            f"Error generating {action} {self.keyword} {difference.qualified_name}: {error}",
            code="generation_failed",
        )


class TableSql(ObjectSqlStrategy):
    keyword = "TABLE"

    def create_sql(self, difference, context):
        if context.catalog is None:
            return self._manual("CREATE", difference)
        try:
            columns = context.catalog.get_table_columns(
                context.target_ref, difference.schema, difference.object_name
            )
        except MigrationEngineError as e:
            return self._lookup_failed("CREATE", difference, e)

        if not columns:
            return GenerationResult.placeholder(
                f"No columns found for table {difference.qualified_name}; CREATE TABLE needs manual definition",
                code="catalog_miss",
            )
        body = ",\n".join(f"  {quote_identifier(c.name)} {c.definition}" for c in columns)
        return GenerationResult(f"CREATE TABLE {qualified(difference.schema, difference.object_name)} (\n{body}\n);")

    def alter_sql(self, difference, context):
        if context.catalog is None:
            return self._manual("ALTER", difference)
        try:
            before = context.catalog.get_table_columns(context.source_ref, difference.schema, difference.object_name)
            after = context.catalog.get_table_columns(context.target_ref, difference.schema, difference.object_name)
        except MigrationEngineError as e:
            return self._lookup_failed("ALTER", difference, e)

        if not before and not after:
            return GenerationResult.placeholder(
                f"No columns found for table {difference.qualified_name}; ALTER TABLE needs manual definition",
                code="catalog_miss",
            )

        table = qualified(difference.schema, difference.object_name)
        before_map = {c.name: c for c in before}
        after_map = {c.name: c for c in after}
        statements = []
        for column in after:
            if column.name not in before_map:
                statements.append(f"ALTER TABLE {table} ADD COLUMN {quote_identifier(column.name)} {column.definition};")
        for column in before:
            if column.name not in after_map:
                statements.append(f"ALTER TABLE {table} DROP COLUMN IF EXISTS {quote_identifier(column.name)};")
        for column in after:
            if column.name in before_map:
                statements.extend(column_changes(
                    table, column.name,
                    ColumnSpec.from_column(before_map[column.name]),
                    ColumnSpec.from_column(column),
                ))

        if not statements:
            # owner or size drift only; nothing to run
            return GenerationResult(f"-- No column changes for table {difference.qualified_name}")
        return GenerationResult("\n".join(statements))

    def pre_conditions(self, difference):
        conditions = super().pre_conditions(difference)
        if difference.kind == DifferenceKind.REMOVED:
            # informational only: no expected value, so it never blocks
            conditions += (PreCondition(
                f"Row count of {difference.qualified_name} before drop",
                f"SELECT COUNT(*) FROM {qualified(difference.schema, difference.object_name)}",
                None,
                "data_condition",
            ),)
        return conditions

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM information_schema.tables "
            f"WHERE table_schema = {quote_literal(difference.schema)} "
            f"AND table_name = {quote_literal(difference.object_name)}"
        )


class ColumnSql(ObjectSqlStrategy):
    """Columns are changed through their owning table (``parent``)."""

    keyword = "COLUMN"

    def create_sql(self, difference, context):
        if not difference.parent:
            return self._orphan(difference)
        definition = difference.target_definition
        if not definition and context.catalog is not None:
            try:
                columns = context.catalog.get_table_columns(context.target_ref, difference.schema, difference.parent)
            except MigrationEngineError as e:
                return self._lookup_failed("CREATE", difference, e)
            definition = next((c.definition for c in columns if c.name == difference.object_name), None)
        if not definition:
            return self._manual("CREATE", difference)
        return GenerationResult(self._add_column(difference, definition))

    def alter_sql(self, difference, context):
        if not difference.parent:
            return self._orphan(difference)
        if not difference.source_definition or not difference.target_definition:
            return self._manual("ALTER", difference)
        statements = column_changes(
            self._table(difference),
            difference.object_name,
            ColumnSpec.parse(difference.source_definition),
            ColumnSpec.parse(difference.target_definition),
        )
        if not statements:
            return GenerationResult(f"-- No effective change for column {difference.qualified_name}")
        return GenerationResult("\n".join(statements))

    def drop_sql(self, difference):
        if not difference.parent:
            return self._orphan(difference)
        return GenerationResult(
            f"ALTER TABLE {self._table(difference)} DROP COLUMN IF EXISTS {quote_identifier(difference.object_name)} CASCADE;"
        )

    def recreate_sql(self, difference):
        if difference.parent and difference.source_definition:
            return self._add_column(difference, difference.source_definition)
        return "-- Rollback not available for DROP COLUMN without backup"

    def existence_query(self, difference):
        if not difference.parent:
            return None
        return (
            "SELECT COUNT(*) FROM information_schema.columns "
            f"WHERE table_schema = {quote_literal(difference.schema)} "
            f"AND table_name = {quote_literal(difference.parent)} "
            f"AND column_name = {quote_literal(difference.object_name)}"
        )

    def _add_column(self, difference: SchemaDifference, definition: str) -> str:
        return f"ALTER TABLE {self._table(difference)} ADD COLUMN {quote_identifier(difference.object_name)} {terminate(definition)}"

    @staticmethod
    def _table(difference: SchemaDifference) -> str:
        return qualified(difference.schema, difference.parent)

    @staticmethod
    def _orphan(difference: SchemaDifference) -> GenerationResult:
        return GenerationResult.placeholder(
            f"Column {difference.qualified_name} has no owning table; statement needs manual definition",
            code="missing_parent",
        )


class IndexSql(ObjectSqlStrategy):
    keyword = "INDEX"

    def create_sql(self, difference, context):
        definition, failure = self._target_definition(difference, context, "CREATE")
        if failure:
            return failure
        return GenerationResult(terminate(definition))

    def alter_sql(self, difference, context):
        definition, failure = self._target_definition(difference, context, "ALTER")
        if failure:
            return failure
        return GenerationResult(
            f"{self.drop_sql(difference).sql}\n{terminate(definition)}"
        )

    def drop_sql(self, difference):
        return GenerationResult(f"DROP INDEX IF EXISTS {qualified(difference.schema, difference.object_name)} CASCADE;")

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM pg_indexes "
            f"WHERE schemaname = {quote_literal(difference.schema)} "
            f"AND indexname = {quote_literal(difference.object_name)}"
        )

    def _target_definition(self, difference, context, action):
        if difference.target_definition:
            return difference.target_definition, None
        if context.catalog is None:
            return None, self._manual(action, difference)
        try:
            definition = context.catalog.get_index_definition(
                context.target_ref, difference.schema, difference.object_name
            )
        except MigrationEngineError as e:
            return None, self._lookup_failed(action, difference, e)
        if not definition:
            return None, GenerationResult.placeholder(
                f"Index {difference.qualified_name} not found in target database", code="catalog_miss"
            )
        return definition, None


class ViewSql(ObjectSqlStrategy):
    """View definitions are the SELECT body, as stored in pg_views."""

    keyword = "VIEW"

    def create_sql(self, difference, context):
        body, failure = self._body(difference, context, "CREATE")
        if failure:
            return failure
        return GenerationResult(f"CREATE VIEW {qualified(difference.schema, difference.object_name)} AS\n{terminate(body)}")

    def alter_sql(self, difference, context):
        body, failure = self._body(difference, context, "ALTER")
        if failure:
            return failure
        return GenerationResult(
            f"CREATE OR REPLACE VIEW {qualified(difference.schema, difference.object_name)} AS\n{terminate(body)}"
        )

    def recreate_sql(self, difference):
        if difference.source_definition:
            return f"CREATE VIEW {qualified(difference.schema, difference.object_name)} AS\n{terminate(difference.source_definition)}"
        return super().recreate_sql(difference)

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM information_schema.views "
            f"WHERE table_schema = {quote_literal(difference.schema)} "
            f"AND table_name = {quote_literal(difference.object_name)}"
        )

    def _body(self, difference, context, action):
        if difference.target_definition:
            return difference.target_definition, None
        if context.catalog is None:
            return None, self._manual(action, difference)
        try:
            body = context.catalog.get_view_definition(context.target_ref, difference.schema, difference.object_name)
        except MigrationEngineError as e:
            return None, self._lookup_failed(action, difference, e)
        if not body:
            return None, GenerationResult.placeholder(
                f"View {difference.qualified_name} not found in target database", code="catalog_miss"
            )
        return body, None


class FunctionSql(ObjectSqlStrategy):
    """Function definitions are complete CREATE OR REPLACE FUNCTION statements."""

    keyword = "FUNCTION"

    def create_sql(self, difference, context):
        return self._from_target(difference, context, "CREATE")

    def alter_sql(self, difference, context):
        return self._from_target(difference, context, "ALTER")

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM pg_proc p JOIN pg_namespace n ON p.pronamespace = n.oid "
            f"WHERE n.nspname = {quote_literal(difference.schema)} "
            f"AND p.proname = {quote_literal(difference.object_name)}"
        )

    def _from_target(self, difference, context, action):
        definition = difference.target_definition
        if not (definition and definition.lstrip().upper().startswith("CREATE")):
            if context.catalog is None:
                return self._manual(action, difference)
            try:
                definition = context.catalog.get_function_definition(
                    context.target_ref, difference.schema, difference.object_name
                )
            except MigrationEngineError as e:
                return self._lookup_failed(action, difference, e)
        if not definition:
            return GenerationResult.placeholder(
                f"Function {difference.qualified_name} not found in target database", code="catalog_miss"
            )
        return GenerationResult(terminate(definition))


class SequenceSql(ObjectSqlStrategy):
    keyword = "SEQUENCE"

    def create_sql(self, difference, context):
        return GenerationResult(self._create(difference, difference.target_definition))

    def alter_sql(self, difference, context):
        return self._manual("ALTER", difference)

    def recreate_sql(self, difference):
        # the restored sequence restarts from its initial value
        return self._create(difference, difference.source_definition)

    @staticmethod
    def _create(difference, options: Optional[str]) -> str:
        """``options`` is the captured ``AS <type> START WITH .. INCREMENT BY ..`` clause."""
        sql = f"CREATE SEQUENCE IF NOT EXISTS {qualified(difference.schema, difference.object_name)}"
        if options:
            sql += f" {options.strip()}"
        return sql + ";"

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM information_schema.sequences "
            f"WHERE sequence_schema = {quote_literal(difference.schema)} "
            f"AND sequence_name = {quote_literal(difference.object_name)}"
        )


class TriggerSql(ObjectSqlStrategy):
    """Trigger definitions are complete CREATE TRIGGER statements."""

    keyword = "TRIGGER"

    def create_sql(self, difference, context):
        definition = difference.target_definition
        if not (definition and definition.lstrip().upper().startswith("CREATE")):
            return self._manual("CREATE", difference)
        return GenerationResult(terminate(definition))

    def alter_sql(self, difference, context):
        created = self.create_sql(difference, context)
        if not created.ok:
            return created
        dropped = self.drop_sql(difference)
        if not dropped.ok:
            return dropped
        return GenerationResult(f"{dropped.sql}\n{created.sql}")

    def drop_sql(self, difference):
        if not difference.parent:
            return GenerationResult.placeholder(
                f"Trigger {difference.qualified_name} has no owning table; DROP TRIGGER needs manual definition",
                code="missing_parent",
            )
        return GenerationResult(
            f"DROP TRIGGER IF EXISTS {quote_identifier(difference.object_name)} "
            f"ON {qualified(difference.schema, difference.parent)} CASCADE;"
        )

    def existence_query(self, difference):
        return (
            "SELECT COUNT(*) FROM information_schema.triggers "
            f"WHERE trigger_schema = {quote_literal(difference.schema)} "
            f"AND trigger_name = {quote_literal(difference.object_name)}"
        )


class GenericSql(ObjectSqlStrategy):
    """Fallback for object types without a dedicated strategy."""

    def create_sql(self, difference, context):
        return self._manual("CREATE", difference)

    def alter_sql(self, difference, context):
        return self._manual("ALTER", difference)

    def drop_sql(self, difference):
        return GenerationResult(
            f"DROP {difference.object_type.upper()} IF EXISTS "
            f"{qualified(difference.schema, difference.object_name)} CASCADE;"
        )

    def rollback_sql(self, difference, context):
        return f"-- Automatic rollback not supported for {difference.object_type} {difference.qualified_name}"


STRATEGIES: Dict[ObjectType, ObjectSqlStrategy] = {
    ObjectType.TABLE: TableSql(),
    ObjectType.COLUMN: ColumnSql(),
    ObjectType.INDEX: IndexSql(),
    ObjectType.VIEW: ViewSql(),
    ObjectType.FUNCTION: FunctionSql(),
    ObjectType.SEQUENCE: SequenceSql(),
    ObjectType.TRIGGER: TriggerSql(),
}

_GENERIC = GenericSql()


def strategy_for(object_type: str) -> ObjectSqlStrategy:
    """Strategy for the type, or the generic one for unknown types."""
    member = ObjectType.parse(object_type)
    if member is None:
        return _GENERIC
    return STRATEGIES[member]
