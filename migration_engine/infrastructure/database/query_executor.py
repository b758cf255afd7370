"""psycopg2 query transport."""
import logging
import time

from migration_engine.domain.entities.execution import QueryResult
from migration_engine.domain.exceptions import QueryExecutionError
from migration_engine.domain.repositories.interfaces import IQueryExecutor
from migration_engine.infrastructure.database.connection import ConnectionRegistry

logger = logging.getLogger(__name__)


class PostgresQueryExecutor(IQueryExecutor):
    """
    Executes single statements on PostgreSQL.
    Single Responsibility: Query transport.
    """

    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    def execute(self, connection_ref: str, sql: str) -> QueryResult:
        started = time.perf_counter()
        try:
            with self._registry.cursor(connection_ref, dict_rows=False) as cur:
                cur.execute(sql)
                rows = tuple(tuple(row) for row in cur.fetchall()) if cur.description else ()
                row_count = cur.rowcount
        except QueryExecutionError as e:
            raise QueryExecutionError(str(e), sql=sql, connection_ref=connection_ref) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"[PostgresQueryExecutor] {connection_ref}: {row_count} rows in {elapsed_ms:.1f}ms")
        return QueryResult(row_count=max(row_count, 0), rows=rows, execution_time_ms=round(elapsed_ms, 2))
