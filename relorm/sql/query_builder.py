"""SQL statement builder over the clause compilers."""

import copy
import logging
from dataclasses import dataclass
from typing import Any

from relorm.db.base import BaseDatabaseAdapter, is_identifier
from relorm.errors import InvalidClauseValueError
from relorm.sql.clauses import (
    ClauseCompiler,
    ColumnElement,
    ConditionClauses,
    JoinClauses,
    SqlBuffer,
    group_by_clauses,
    having_clauses,
    order_by_clauses,
    where_clauses,
)

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class CompiledQuery:
    """Statement text plus the parameters bound to its placeholders."""

    sql: str
    params: tuple

    def __str__(self) -> str:
        return self.sql


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidClauseValueError(f"{name} must be a non-negative integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidClauseValueError(f"{name} must be a non-negative integer, got {value!r}") from None
    if number < 0 or number != value:
        raise InvalidClauseValueError(f"{name} must be a non-negative integer, got {value!r}")
    return number


class QueryBuilder:
    """Builds SELECT/INSERT/UPDATE/DELETE statements for one table.

    Each builder is owned by a single caller; use ``clone()`` to reuse a
    partially built query without sharing clause state.

    Example:
        >>> qb = QueryBuilder(db, "user").where("age", ">=", 18).order_by("name")
        >>> qb.compile_select().sql
        'SELECT * FROM "user" WHERE "age" >= ? ORDER BY "name" ASC'
    """

    def __init__(self, db: BaseDatabaseAdapter, table: str | None = None, alias: str | None = None):
        self.db = db
        self._table: str | None = None
        self._alias: str | None = None
        self._columns: list[str] = []
        self._distinct = False
        self._limit: int | None = None
        self._offset: int | None = None
        self._joins = JoinClauses()
        self._where = where_clauses()
        self._group_by = group_by_clauses()
        self._having = having_clauses()
        self._order_by = order_by_clauses()
        if table is not None:
            self.table(table, alias)

    # -- target ------------------------------------------------------------

    def table(self, name: str, alias: str | None = None) -> "QueryBuilder":
        if not is_identifier(name):
            raise InvalidClauseValueError(f"Invalid table name '{name}'")
        if alias is not None and not is_identifier(alias):
            raise InvalidClauseValueError(f"Invalid table alias '{alias}'")
        self._table = name
        self._alias = alias
        return self

    from_ = table

    @property
    def table_name(self) -> str | None:
        return self._table

    @property
    def alias(self) -> str | None:
        return self._alias

    def select(self, *columns: str) -> "QueryBuilder":
        element = ColumnElement()
        self._columns.extend(element.normalize(c, []) for c in columns)
        return self

    def distinct(self, value: bool = True) -> "QueryBuilder":
        self._distinct = value
        return self

    # -- clauses -----------------------------------------------------------

    def _condition(
        self, clauses: ConditionClauses, column: str, operator: Any, value: Any, connective: str
    ) -> "QueryBuilder":
        if value is _MISSING:
            operator, value = "=", operator
        clauses.add_subexpression((column, operator, value), connective)
        return self

    def where(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        """Add an AND condition. ``where("id", 6)`` is ``where("id", "=", 6)``."""
        return self._condition(self._where, column, operator, value, "AND")

    def or_where(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        return self._condition(self._where, column, operator, value, "OR")

    def where_open(self) -> "QueryBuilder":
        self._where.open("AND")
        return self

    def or_where_open(self) -> "QueryBuilder":
        self._where.open("OR")
        return self

    def where_close(self) -> "QueryBuilder":
        self._where.close()
        return self

    def having(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        return self._condition(self._having, column, operator, value, "AND")

    def or_having(self, column: str, operator: Any, value: Any = _MISSING) -> "QueryBuilder":
        return self._condition(self._having, column, operator, value, "OR")

    def having_open(self) -> "QueryBuilder":
        self._having.open("AND")
        return self

    def or_having_open(self) -> "QueryBuilder":
        self._having.open("OR")
        return self

    def having_close(self) -> "QueryBuilder":
        self._having.close()
        return self

    def group_by(self, *columns: str) -> "QueryBuilder":
        for column in columns:
            self._group_by.add_subexpression((column,))
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "QueryBuilder":
        self._order_by.add_subexpression((column, direction))
        return self

    def join(self, table: str, alias: str | None = None, join_type: str = "INNER") -> "QueryBuilder":
        self._joins.add_subexpression((table, alias, join_type))
        return self

    def on(self, left: str, operator: str, right: str = _MISSING) -> "QueryBuilder":
        if right is _MISSING:
            operator, right = "=", operator
        self._joins.on(left, operator, right)
        return self

    def limit(self, limit: int, offset: int | None = None) -> "QueryBuilder":
        self._limit = _non_negative_int(limit, "LIMIT")
        if offset is not None:
            self.offset(offset)
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._offset = _non_negative_int(offset, "OFFSET")
        return self

    @property
    def clauses(self) -> dict[str, ClauseCompiler]:
        return {
            "join": self._joins,
            "where": self._where,
            "group_by": self._group_by,
            "having": self._having,
            "order_by": self._order_by,
        }

    def clear(self) -> "QueryBuilder":
        """Reset every clause, keeping the target table."""
        for clauses in self.clauses.values():
            clauses.clear()
        self._columns = []
        self._distinct = False
        self._limit = None
        self._offset = None
        return self

    def clone(self) -> "QueryBuilder":
        other = copy.copy(self)
        other._columns = list(self._columns)
        other._joins = self._joins.clone()
        other._where = self._where.clone()
        other._group_by = self._group_by.clone()
        other._having = self._having.clone()
        other._order_by = self._order_by.clone()
        return other

    # -- compilation -------------------------------------------------------

    def _buffer(self) -> SqlBuffer:
        return SqlBuffer(dialect=self.db.dialect, placeholder=self.db.placeholder)

    def _require_table(self) -> str:
        if not self._table:
            raise InvalidClauseValueError("No table set on query builder")
        return self._table

    def _default_columns(self) -> list[str]:
        return ["*"]

    def _compile_from(self, buffer: SqlBuffer) -> None:
        buffer.append(f" FROM {buffer.quote_table(self._require_table())}")
        if self._alias:
            buffer.append(f" AS {buffer.quote_table(self._alias)}")
        self._joins.compile(buffer)
        self._compile_clause(self._where, buffer)

    @staticmethod
    def _compile_clause(clauses: ClauseCompiler, buffer: SqlBuffer) -> None:
        if len(clauses):
            buffer.append(" ")
            clauses.compile(buffer)

    def compile_select(self) -> CompiledQuery:
        buffer = self._buffer()
        columns = self._columns or self._default_columns()
        buffer.append("SELECT DISTINCT " if self._distinct else "SELECT ")
        buffer.append(", ".join(buffer.quote_column(c) for c in columns))
        self._compile_from(buffer)
        self._compile_clause(self._group_by, buffer)
        self._compile_clause(self._having, buffer)
        self._compile_clause(self._order_by, buffer)
        if self._limit is not None:
            buffer.append(f" LIMIT {self._limit}")
        if self._offset is not None:
            buffer.append(f" OFFSET {self._offset}")
        return CompiledQuery(buffer.sql, tuple(buffer.params))

    def compile_count(self) -> CompiledQuery:
        """COUNT(*) over the filtered rows, ignoring ordering and limits."""
        if len(self._group_by) or self._distinct:
            inner = self.clone()
            inner._order_by.clear()
            inner._limit = inner._offset = None
            if not inner._columns and len(self._group_by):
                inner._columns = [subexp[0] for subexp in self._group_by.subexpressions]
            compiled = inner.compile_select()
            return CompiledQuery(f"SELECT COUNT(*) FROM ({compiled.sql}) AS counted", compiled.params)

        buffer = self._buffer()
        buffer.append("SELECT COUNT(*)")
        self._compile_from(buffer)
        return CompiledQuery(buffer.sql, tuple(buffer.params))

    def compile_insert(self, data: dict[str, Any], returning: str | None = None) -> CompiledQuery:
        buffer = self._buffer()
        element = ColumnElement()
        buffer.append(f"INSERT INTO {buffer.quote_table(self._require_table())}")
        if data:
            columns = ", ".join(buffer.quote_column(element.normalize(c, [])) for c in data)
            values = ", ".join(buffer.bind(v) for v in data.values())
            buffer.append(f" ({columns}) VALUES ({values})")
        else:
            buffer.append(" DEFAULT VALUES")
        if returning:
            buffer.append(f" RETURNING {buffer.quote_column(element.normalize(returning, []))}")
        return CompiledQuery(buffer.sql, tuple(buffer.params))

    def compile_update(self, data: dict[str, Any]) -> CompiledQuery:
        if not data:
            raise InvalidClauseValueError("UPDATE requires at least one column value")
        buffer = self._buffer()
        element = ColumnElement()
        buffer.append(f"UPDATE {buffer.quote_table(self._require_table())} SET ")
        buffer.append(
            ", ".join(f"{buffer.quote_column(element.normalize(c, []))} = {buffer.bind(v)}" for c, v in data.items())
        )
        self._compile_clause(self._where, buffer)
        return CompiledQuery(buffer.sql, tuple(buffer.params))

    def compile_delete(self) -> CompiledQuery:
        buffer = self._buffer()
        buffer.append(f"DELETE FROM {buffer.quote_table(self._require_table())}")
        self._compile_clause(self._where, buffer)
        return CompiledQuery(buffer.sql, tuple(buffer.params))

    # -- execution ---------------------------------------------------------

    def _execute(self, compiled: CompiledQuery) -> Any:
        logger.debug("%s %s", compiled.sql, list(compiled.params))
        return self.db.execute(compiled.sql, compiled.params)

    def find_row(self) -> dict[str, Any] | None:
        """Fetch the first matching row as a dict, or None."""
        query = self.clone()
        query._limit = 1
        rows = self.db.fetch_dicts(query._execute(query.compile_select()))
        return rows[0] if rows else None

    def find_rows(self) -> list[dict[str, Any]]:
        return self.db.fetch_dicts(self._execute(self.compile_select()))

    def count(self) -> int:
        row = self.db.fetchone(self._execute(self.compile_count()))
        return int(row[0]) if row else 0

    def insert(self, data: dict[str, Any], returning: str | None = None) -> Any:
        """Insert one row.

        Returns:
            The ``returning`` column of the new row when given, else the
            number of inserted rows
        """
        result = self._execute(self.compile_insert(data, returning))
        if returning:
            row = self.db.fetchone(result)
            return row[0] if row else None
        return self.db.affected_rows(result)

    def update(self, data: dict[str, Any]) -> int:
        return self.db.affected_rows(self._execute(self.compile_update(data)))

    def delete(self) -> int:
        return self.db.affected_rows(self._execute(self.compile_delete()))
