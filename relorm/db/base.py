"""Base database adapter interface."""

import re
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Sequence

# Pattern for valid SQL identifiers: starts with letter or underscore,
# followed by letters, digits, or underscores. Also allows dots for
# qualified names (schema.table).
_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)*$")


def validate_identifier(value: str, name: str = "identifier") -> str:
    """Validate that a value is a safe SQL identifier.

    Allows letters, digits, underscores, and dots (for qualified names).
    Must start with a letter or underscore.

    Args:
        value: The identifier value to validate
        name: Human-readable name for error messages (e.g., "table name", "column")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is empty or contains invalid characters
    """
    if not value:
        raise ValueError(f"Invalid {name}: cannot be empty")

    if not isinstance(value, str) or not _IDENTIFIER_PATTERN.match(value):
        raise ValueError(
            f"Invalid {name}: '{value}'. "
            f"Identifiers must start with a letter or underscore and contain only "
            f"letters, digits, underscores, and dots."
        )

    return value


def is_identifier(value: Any) -> bool:
    """Return True if value is a plain or dotted SQL identifier."""
    return isinstance(value, str) and bool(_IDENTIFIER_PATTERN.match(value))


class BaseDatabaseAdapter(ABC):
    """Abstract base class for database adapters.

    This is the only collaborator the ORM core talks to for execution. Adapters
    run parameterized statements, expose row cursors, and report affected row
    counts. Driver errors are wrapped in ``DatabaseExecutionError``.
    """

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """Execute a parameterized statement and return a cursor-like result.

        Args:
            sql: SQL statement using this adapter's placeholder style
            params: Values bound to the placeholders, in order

        Returns:
            Database-specific result object exposing ``fetchone``/``fetchall``
            and ``description``
        """
        raise NotImplementedError

    @abstractmethod
    def executemany(self, sql: str, params: list) -> Any:
        """Execute SQL with multiple parameter sets.

        Args:
            sql: SQL statement with placeholders
            params: List of parameter tuples

        Returns:
            Database-specific result object
        """
        raise NotImplementedError

    @abstractmethod
    def affected_rows(self, result: Any) -> int:
        """Number of rows changed by the INSERT/UPDATE/DELETE behind ``result``."""
        raise NotImplementedError

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Context manager running the enclosed statements atomically.

        Commits on normal exit and rolls back when the block raises. Cascading
        deletes issue several statements and are only atomic inside one.
        """
        raise NotImplementedError

    @abstractmethod
    def get_tables(self) -> list[dict]:
        """Get list of tables in database.

        Returns:
            List of dicts with 'table_name' and 'schema' keys
        """
        raise NotImplementedError

    @abstractmethod
    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table.

        Args:
            table_name: Name of table
            schema: Schema name (optional)

        Returns:
            List of dicts with 'column_name' and 'data_type' keys, in table order
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        raise NotImplementedError

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Get SQLGlot dialect name (e.g., 'duckdb', 'postgres')."""
        raise NotImplementedError

    @property
    @abstractmethod
    def placeholder(self) -> str:
        """Positional parameter marker understood by the driver."""
        raise NotImplementedError

    @property
    @abstractmethod
    def raw_connection(self) -> Any:
        """Get underlying database connection object."""
        raise NotImplementedError

    def fetchone(self, result: Any) -> tuple | None:
        """Fetch one row from result."""
        return result.fetchone()

    def fetchall(self, result: Any) -> list[tuple]:
        """Fetch all remaining rows from result."""
        return result.fetchall()

    def fetch_dicts(self, result: Any) -> list[dict[str, Any]]:
        """Fetch all rows as dicts keyed by column name."""
        columns = [col[0] for col in result.description or []]
        return [dict(zip(columns, row)) for row in self.fetchall(result)]

    def query_cell(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """Run a query and return the first column of the first row (or None)."""
        row = self.fetchone(self.execute(sql, params))
        return row[0] if row else None
