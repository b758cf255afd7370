"""Database introspection services."""
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from migration_engine.domain.entities.schema import (
    SYSTEM_SCHEMAS, ColumnInfo, DatabaseObject, ObjectDependency, ObjectType, Relationship, object_key,
)
from migration_engine.domain.repositories.interfaces import ISchemaSnapshotProvider
from migration_engine.domain.services.sql_generation import qualified, quote_identifier
from migration_engine.infrastructure.database.connection import ConnectionRegistry

logger = logging.getLogger(__name__)

TABLE = ObjectType.TABLE.value
VIEW = ObjectType.VIEW.value
SEQUENCE = ObjectType.SEQUENCE.value

_RELKIND_TYPES = {"r": TABLE, "p": TABLE, "v": VIEW}


class PostgresSnapshotProvider(ISchemaSnapshotProvider):
    """
    PostgreSQL schema inspector.
    Single Responsibility: Database introspection.

    Tables are captured with a ``CREATE TABLE`` definition rebuilt from
    their columns, so a dropped table can be re-created on rollback.
    """

    def __init__(self, registry: ConnectionRegistry, include_system_schemas: bool = False):
        self._registry = registry
        self._include_system_schemas = include_system_schemas

    def get_objects(self, connection_ref: str) -> List[DatabaseObject]:
        with self._registry.cursor(connection_ref) as cur:
            columns = self._get_columns(cur)
            foreign_keys = self._get_foreign_key_targets(cur)
            view_refs = self._get_view_references(cur)
            sequence_usage = self._get_sequence_usage(cur)

            objects: List[DatabaseObject] = []
            objects.extend(self._get_tables(cur, columns, foreign_keys, sequence_usage))
            objects.extend(self._column_objects(columns, sequence_usage))
            objects.extend(self._get_indexes(cur))
            objects.extend(self._get_views(cur, view_refs))
            objects.extend(self._get_functions(cur))
            objects.extend(self._get_sequences(cur))
            objects.extend(self._get_triggers(cur))

        objects = [o for o in objects if self._include_system_schemas or o.schema not in SYSTEM_SCHEMAS]
        logger.info(f"[PostgresSnapshotProvider] {connection_ref}: captured {len(objects)} objects")
        return objects

    def get_relationships(self, connection_ref: str) -> List[Relationship]:
        query = """
            SELECT
                tc.constraint_name,
                tc.table_schema,
                tc.table_name,
                kcu.column_name,
                ccu.table_schema AS foreign_table_schema,
                ccu.table_name AS foreign_table_name,
                ccu.column_name AS foreign_column_name
            FROM information_schema.table_constraints AS tc
            JOIN information_schema.key_column_usage AS kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage AS ccu
                ON ccu.constraint_name = tc.constraint_name
                AND ccu.table_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
            ORDER BY tc.table_schema, tc.table_name, tc.constraint_name
        """
        with self._registry.cursor(connection_ref) as cur:
            cur.execute(query)
            rows = cur.fetchall()

        return [
            Relationship(
                constraint_name=row['constraint_name'],
                table_schema=row['table_schema'],
                table_name=row['table_name'],
                column_name=row['column_name'],
                foreign_table_schema=row['foreign_table_schema'],
                foreign_table_name=row['foreign_table_name'],
                foreign_column_name=row['foreign_column_name'],
            )
            for row in rows
        ]

    def get_table_columns(self, connection_ref: str, schema: str, table: str) -> List[ColumnInfo]:
        query = """
            SELECT column_name, data_type, is_nullable, column_default,
                   character_maximum_length, numeric_precision, numeric_scale
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
        """
        with self._registry.cursor(connection_ref) as cur:
            cur.execute(query, (schema, table))
            return [self._column_info(row) for row in cur.fetchall()]

    def get_index_definition(self, connection_ref: str, schema: str, index: str) -> Optional[str]:
        return self._scalar(
            connection_ref,
            "SELECT indexdef AS definition FROM pg_indexes WHERE schemaname = %s AND indexname = %s",
            (schema, index),
        )

    def get_view_definition(self, connection_ref: str, schema: str, view: str) -> Optional[str]:
        return self._scalar(
            connection_ref,
            "SELECT definition FROM pg_views WHERE schemaname = %s AND viewname = %s",
            (schema, view),
        )

    def get_function_definition(self, connection_ref: str, schema: str, function: str) -> Optional[str]:
        return self._scalar(
            connection_ref,
            """
            SELECT pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p JOIN pg_namespace n ON p.pronamespace = n.oid
            WHERE n.nspname = %s AND p.proname = %s AND p.prokind = 'f'
            ORDER BY p.oid
            LIMIT 1
            """,
            (schema, function),
        )

    def _scalar(self, connection_ref: str, query: str, params: Tuple) -> Optional[str]:
        with self._registry.cursor(connection_ref) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        return row['definition'] if row else None

    def _get_columns(self, cur) -> Dict[Tuple[str, str], List[ColumnInfo]]:
        query = """
            SELECT c.table_schema, c.table_name, c.column_name, c.data_type, c.is_nullable,
                   c.column_default, c.character_maximum_length, c.numeric_precision, c.numeric_scale
            FROM information_schema.columns c
            JOIN information_schema.tables t
                ON t.table_schema = c.table_schema AND t.table_name = c.table_name
            WHERE t.table_type = 'BASE TABLE'
            ORDER BY c.table_schema, c.table_name, c.ordinal_position
        """
        cur.execute(query)
        columns: Dict[Tuple[str, str], List[ColumnInfo]] = defaultdict(list)
        for row in cur.fetchall():
            columns[(row['table_schema'], row['table_name'])].append(self._column_info(row))
        return columns

    def _get_foreign_key_targets(self, cur) -> Dict[Tuple[str, str], List[Tuple[str, str]]]:
        query = """
            SELECT DISTINCT n.nspname AS table_schema, c.relname AS table_name,
                   fn.nspname AS foreign_schema, fc.relname AS foreign_table
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_class fc ON fc.oid = con.confrelid
            JOIN pg_namespace fn ON fn.oid = fc.relnamespace
            WHERE con.contype = 'f'
        """
        cur.execute(query)
        targets: Dict[Tuple[str, str], List[Tuple[str, str]]] = defaultdict(list)
        for row in cur.fetchall():
            targets[(row['table_schema'], row['table_name'])].append((row['foreign_schema'], row['foreign_table']))
        return targets

    def _get_view_references(self, cur) -> Dict[Tuple[str, str], List[str]]:
        """Keys of the tables and views each view reads from."""
        query = """
            SELECT DISTINCT vn.nspname AS view_schema, v.relname AS view_name,
                   tn.nspname AS ref_schema, t.relname AS ref_name, t.relkind
            FROM pg_depend d
            JOIN pg_rewrite r ON r.oid = d.objid
            JOIN pg_class v ON v.oid = r.ev_class
            JOIN pg_namespace vn ON vn.oid = v.relnamespace
            JOIN pg_class t ON t.oid = d.refobjid
            JOIN pg_namespace tn ON tn.oid = t.relnamespace
            WHERE d.classid = 'pg_rewrite'::regclass
              AND d.refclassid = 'pg_class'::regclass
              AND v.oid <> t.oid
        """
        cur.execute(query)
        refs: Dict[Tuple[str, str], List[str]] = defaultdict(list)
        for row in cur.fetchall():
            ref_type = _RELKIND_TYPES.get(row['relkind'])
            if ref_type:
                refs[(row['view_schema'], row['view_name'])].append(
                    object_key(ref_type, row['ref_schema'], row['ref_name'])
                )
        return refs

    def _get_sequence_usage(self, cur) -> Dict[Tuple[str, str], List[Tuple[str, str, str]]]:
        """(column, sequence schema, sequence name) for each column default that calls ``nextval``."""
        query = """
            SELECT tn.nspname AS table_schema, t.relname AS table_name, a.attname AS column_name,
                   sn.nspname AS sequence_schema, s.relname AS sequence_name
            FROM pg_attrdef ad
            JOIN pg_depend d
                ON d.classid = 'pg_attrdef'::regclass AND d.objid = ad.oid
               AND d.refclassid = 'pg_class'::regclass
            JOIN pg_class s ON s.oid = d.refobjid AND s.relkind = 'S'
            JOIN pg_namespace sn ON sn.oid = s.relnamespace
            JOIN pg_class t ON t.oid = ad.adrelid
            JOIN pg_namespace tn ON tn.oid = t.relnamespace
            JOIN pg_attribute a ON a.attrelid = ad.adrelid AND a.attnum = ad.adnum
            ORDER BY tn.nspname, t.relname, a.attnum
        """
        cur.execute(query)
        usage: Dict[Tuple[str, str], List[Tuple[str, str, str]]] = defaultdict(list)
        for row in cur.fetchall():
            usage[(row['table_schema'], row['table_name'])].append(
                (row['column_name'], row['sequence_schema'], row['sequence_name'])
            )
        return usage

    def _get_tables(self, cur, columns, foreign_keys, sequence_usage) -> List[DatabaseObject]:
        query = """
            SELECT n.nspname AS table_schema, c.relname AS table_name,
                   pg_get_userbyid(c.relowner) AS owner,
                   pg_total_relation_size(c.oid) AS size_in_bytes
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relkind IN ('r', 'p')
            ORDER BY n.nspname, c.relname
        """
        cur.execute(query)
        tables = []
        for row in cur.fetchall():
            schema, name = row['table_schema'], row['table_name']
            table_columns = columns.get((schema, name), [])
            references = [
                ObjectDependency(object_key(TABLE, fs, ft), "foreign_key")
                for fs, ft in foreign_keys.get((schema, name), [])
                if (fs, ft) != (schema, name)
            ]
            # the CREATE TABLE carries the column defaults, so it needs their sequences
            sequences = {
                ObjectDependency(object_key(SEQUENCE, ss, sn), "uses_sequence")
                for _, ss, sn in sequence_usage.get((schema, name), [])
            }
            tables.append(DatabaseObject(
                object_type=TABLE,
                schema=schema,
                name=name,
                owner=row['owner'],
                definition=self._table_definition(schema, name, table_columns),
                size_in_bytes=row['size_in_bytes'],
                dependencies=tuple(references) + tuple(sorted(sequences, key=lambda d: d.target_key)),
            ))
        return tables

    @staticmethod
    def _column_objects(columns, sequence_usage) -> List[DatabaseObject]:
        objects = []
        for (schema, table), table_columns in columns.items():
            sequences = defaultdict(list)
            for column_name, ss, sn in sequence_usage.get((schema, table), []):
                sequences[column_name].append(ObjectDependency(object_key(SEQUENCE, ss, sn), "uses_sequence"))
            for column in table_columns:
                objects.append(DatabaseObject(
                    object_type=ObjectType.COLUMN.value,
                    schema=schema,
                    name=column.name,
                    definition=column.definition,
                    parent=table,
                    dependencies=(
                        (ObjectDependency(object_key(TABLE, schema, table), "column_of"),)
                        + tuple(sequences[column.name])
                    ),
                ))
        return objects

    def _get_indexes(self, cur) -> List[DatabaseObject]:
        cur.execute("SELECT schemaname, tablename, indexname, indexdef FROM pg_indexes ORDER BY schemaname, indexname")
        return [
            DatabaseObject(
                object_type=ObjectType.INDEX.value,
                schema=row['schemaname'],
                name=row['indexname'],
                definition=row['indexdef'],
                parent=row['tablename'],
                dependencies=(ObjectDependency(object_key(TABLE, row['schemaname'], row['tablename']), "index_on"),),
            )
            for row in cur.fetchall()
        ]

    def _get_views(self, cur, view_refs) -> List[DatabaseObject]:
        cur.execute("SELECT schemaname, viewname, viewowner, definition FROM pg_views ORDER BY schemaname, viewname")
        return [
            DatabaseObject(
                object_type=VIEW,
                schema=row['schemaname'],
                name=row['viewname'],
                owner=row['viewowner'],
                definition=row['definition'],
                dependencies=tuple(
                    ObjectDependency(key, "view_reference")
                    for key in view_refs.get((row['schemaname'], row['viewname']), [])
                ),
            )
            for row in cur.fetchall()
        ]

    def _get_functions(self, cur) -> List[DatabaseObject]:
        query = """
            SELECT n.nspname AS schema, p.proname AS name,
                   pg_get_userbyid(p.proowner) AS owner,
                   pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE p.prokind = 'f'
              AND n.nspname NOT IN ('pg_catalog', 'information_schema')
            ORDER BY n.nspname, p.proname
        """
        cur.execute(query)
        return [
            DatabaseObject(
                object_type=ObjectType.FUNCTION.value,
                schema=row['schema'],
                name=row['name'],
                owner=row['owner'],
                definition=row['definition'],
            )
            for row in cur.fetchall()
        ]

    def _get_sequences(self, cur) -> List[DatabaseObject]:
        query = """
            SELECT schemaname, sequencename, sequenceowner, data_type, start_value, increment_by
            FROM pg_sequences
            ORDER BY schemaname, sequencename
        """
        cur.execute(query)
        return [
            DatabaseObject(
                object_type=ObjectType.SEQUENCE.value,
                schema=row['schemaname'],
                name=row['sequencename'],
                owner=row['sequenceowner'],
                definition=f"AS {row['data_type']} START WITH {row['start_value']} INCREMENT BY {row['increment_by']}",
            )
            for row in cur.fetchall()
        ]

    def _get_triggers(self, cur) -> List[DatabaseObject]:
        query = """
            SELECT n.nspname AS schema, c.relname AS table_name, t.tgname AS name,
                   pg_get_triggerdef(t.oid) AS definition
            FROM pg_trigger t
            JOIN pg_class c ON c.oid = t.tgrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE NOT t.tgisinternal
            ORDER BY n.nspname, t.tgname
        """
        cur.execute(query)
        return [
            DatabaseObject(
                object_type=ObjectType.TRIGGER.value,
                schema=row['schema'],
                name=row['name'],
                definition=row['definition'],
                parent=row['table_name'],
                dependencies=(ObjectDependency(object_key(TABLE, row['schema'], row['table_name']), "trigger_on"),),
            )
            for row in cur.fetchall()
        ]

    @staticmethod
    def _table_definition(schema: str, name: str, columns: List[ColumnInfo]) -> Optional[str]:
        if not columns:
            return None
        body = ",\n".join(f"  {quote_identifier(c.name)} {c.definition}" for c in columns)
        return f"CREATE TABLE {qualified(schema, name)} (\n{body}\n)"

    @staticmethod
    def _column_info(row) -> ColumnInfo:
        return ColumnInfo(
            name=row['column_name'],
            data_type=row['data_type'],
            nullable=row['is_nullable'] == 'YES',
            default_value=row['column_default'],
            max_length=row['character_maximum_length'],
            numeric_precision=row['numeric_precision'],
            numeric_scale=row['numeric_scale'],
        )
