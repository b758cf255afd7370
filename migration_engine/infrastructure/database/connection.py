"""Connection reference resolution for PostgreSQL."""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from migration_engine.domain.exceptions import InputValidationError, QueryExecutionError

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Maps connection references to DSNs and opens short-lived connections.
    Single Responsibility: Connection handling.

    A reference that is not registered but looks like a DSN
    (``postgresql://...`` or ``host=... dbname=...``) is used as is.
    """

    def __init__(self, connections: Optional[Dict[str, str]] = None, statement_timeout_ms: Optional[int] = None):
        self._connections = dict(connections or {})
        self._statement_timeout_ms = statement_timeout_ms

    def refs(self):
        return sorted(self._connections)

    def dsn_for(self, ref: str) -> str:
        if ref in self._connections:
            return self._connections[ref]
        if "://" in ref or "=" in ref:
            return ref
        raise InputValidationError(f"Unknown connection reference: {ref!r}")

    @contextmanager
    def cursor(self, ref: str, dict_rows: bool = True) -> Iterator:
        """Cursor on a fresh connection; committed on success, psycopg2 errors re-raised as QueryExecutionError."""
        dsn = self.dsn_for(ref)
        try:
            conn = psycopg2.connect(dsn)
        except psycopg2.Error as e:
            raise QueryExecutionError(f"Could not connect to {ref}: {e}".strip(), connection_ref=ref) from e

        try:
            with conn.cursor(cursor_factory=RealDictCursor if dict_rows else None) as cur:
                if self._statement_timeout_ms:
                    cur.execute("SET statement_timeout = %s", (self._statement_timeout_ms,))
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise QueryExecutionError(str(e).strip(), connection_ref=ref) from e
        finally:
            conn.close()
