"""DuckDB database adapter."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Sequence

import duckdb

from relorm.db.base import BaseDatabaseAdapter
from relorm.errors import DatabaseExecutionError

logger = logging.getLogger(__name__)


class DuckDBAdapter(BaseDatabaseAdapter):
    """DuckDB database adapter.

    Statements run in autocommit mode unless they are issued inside
    ``transaction()``.
    """

    def __init__(self, path: str = ":memory:"):
        """Initialize DuckDB adapter.

        Args:
            path: Database file path or ":memory:" for in-memory database
        """
        self.path = path
        self.conn = duckdb.connect(path)

    def _run(self, method: str, sql: str, *args: Any) -> Any:
        try:
            return getattr(self.conn, method)(sql, *args)
        except duckdb.Error as e:
            raise DatabaseExecutionError(f"DuckDB error: {e}", sql=sql, params=args[0] if args else None) from e

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> duckdb.DuckDBPyConnection:
        """Execute SQL and return the connection, which doubles as the result cursor."""
        if params:
            return self._run("execute", sql, list(params))
        return self._run("execute", sql)

    def executemany(self, sql: str, params: list) -> duckdb.DuckDBPyConnection:
        return self._run("executemany", sql, params)

    def affected_rows(self, result: Any) -> int:
        # DML statements return a single row holding the count
        row = result.fetchone()
        return int(row[0]) if row else 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.conn.begin()
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        self.conn.commit()

    def get_tables(self) -> list[dict]:
        rows = self.execute(
            """
            SELECT table_name, schema_name
            FROM duckdb_tables()
            WHERE schema_name NOT IN ('information_schema', 'pg_catalog')
            ORDER BY schema_name, table_name
        """
        ).fetchall()
        return [{"table_name": name, "schema": schema} for name, schema in rows]

    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        conditions = ["table_name = ?"]
        params: list[Any] = [table_name]
        if schema:
            conditions.append("schema_name = ?")
            params.append(schema)

        rows = self.execute(
            f"SELECT column_name, data_type FROM duckdb_columns() WHERE {' AND '.join(conditions)} "
            "ORDER BY column_index",
            params,
        ).fetchall()
        return [{"column_name": name, "data_type": data_type} for name, data_type in rows]

    def close(self) -> None:
        self.conn.close()

    @property
    def dialect(self) -> str:
        return "duckdb"

    @property
    def placeholder(self) -> str:
        return "?"

    @property
    def raw_connection(self) -> Any:
        """Get underlying DuckDB connection."""
        return self.conn

    @classmethod
    def from_url(cls, url: str) -> "DuckDBAdapter":
        """Create adapter from connection URL.

        Args:
            url: Connection URL (e.g., "duckdb:///:memory:" or "duckdb:///path/to/db.duckdb")

        Returns:
            DuckDBAdapter instance
        """
        if not url.startswith("duckdb://"):
            raise ValueError(f"Invalid DuckDB URL: {url}")

        # duckdb:///:memory: and duckdb:/// -> :memory:
        # duckdb:///app.db -> /app.db, duckdb:////abs/app.db -> /abs/app.db
        path = url[len("duckdb://") :]
        if path in ("", "/", ":memory:", "/:memory:"):
            path = ":memory:"
        elif path.startswith("//"):
            path = path[1:]

        logger.debug("Opening DuckDB database at %s", path)
        return cls(path)
