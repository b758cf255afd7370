from abc import ABC, abstractmethod
from typing import List, Optional

from migration_engine.domain.entities.schema import ColumnInfo, DatabaseObject, Relationship
from migration_engine.domain.entities.execution import QueryResult


class ISchemaSnapshotProvider(ABC):
    """Interface for reading schema objects and catalog details."""

    @abstractmethod
    def get_objects(self, connection_ref: str) -> List[DatabaseObject]:
        """Retrieve every schema object visible through the connection."""
        pass

    @abstractmethod
    def get_relationships(self, connection_ref: str) -> List[Relationship]:
        """Retrieve foreign key relationships."""
        pass

    @abstractmethod
    def get_table_columns(self, connection_ref: str, schema: str, table: str) -> List[ColumnInfo]:
        """Columns of a table in ordinal order, empty when the table is unknown."""
        pass

    @abstractmethod
    def get_index_definition(self, connection_ref: str, schema: str, index: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_view_definition(self, connection_ref: str, schema: str, view: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_function_definition(self, connection_ref: str, schema: str, function: str) -> Optional[str]:
        pass


class IQueryExecutor(ABC):
    """Interface for the query execution transport."""

    @abstractmethod
    def execute(self, connection_ref: str, sql: str) -> QueryResult:
        """
        Execute one SQL statement against the connection.
        Raises QueryExecutionError on any statement error.
        """
        pass
