"""Composable SQL clause compilers.

A clause (WHERE, GROUP BY, HAVING, ORDER BY, JOIN) holds an ordered list of
sub-expressions. A sub-expression is a tuple of elements such as
``("age", ">=", 18)``; every position has an element handler that validates
the element when it is added and renders it when the clause is compiled.

Values are never written into statement text: they are bound through
``SqlBuffer.bind`` and end up in the parameter list.
"""

import copy
from collections.abc import Sequence, Set
from dataclasses import dataclass, field
from typing import Any

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from relorm.db.base import is_identifier
from relorm.errors import InvalidClauseValueError

COMPARISON_OPERATORS = frozenset({"=", "!=", "<>", ">", "<", ">=", "<="})
LIST_OPERATORS = frozenset({"IN", "NOT IN"})
PATTERN_OPERATORS = frozenset({"LIKE", "NOT LIKE"})
NULL_OPERATORS = frozenset({"IS", "IS NOT"})
OPERATORS = COMPARISON_OPERATORS | LIST_OPERATORS | PATTERN_OPERATORS | NULL_OPERATORS | {"BETWEEN"}

JOIN_TYPES = frozenset({"INNER", "LEFT", "RIGHT", "FULL", "CROSS"})
CONNECTIVES = frozenset({"AND", "OR"})


def quote_identifier(name: str, dialect: str | None = None) -> str:
    """Quote a plain or dotted identifier for ``dialect``."""
    return ".".join(exp.to_identifier(part, quoted=True).sql(dialect=dialect) for part in name.split("."))


def parse_column_expression(expr: str, dialect: str | None = None) -> exp.Expression:
    """Parse a column reference or function call such as ``COUNT(id)``.

    Only columns, ``*`` and function calls over them are accepted; anything
    containing a subquery is rejected.
    """
    try:
        statements = sqlglot.parse(expr, read=dialect)
    except SqlglotError as e:
        raise InvalidClauseValueError(f"Invalid column expression '{expr}': {e}") from e

    if len(statements) != 1 or statements[0] is None:
        raise InvalidClauseValueError(f"Invalid column expression '{expr}': expected a single expression")
    node = statements[0]
    if not isinstance(node, (exp.Column, exp.Star, exp.Func)):
        raise InvalidClauseValueError(
            f"Invalid column expression '{expr}': expected a column or function call, got {node.key}"
        )
    if node.find(exp.Select, exp.Subquery) is not None:
        raise InvalidClauseValueError(f"Invalid column expression '{expr}': subqueries are not allowed")
    return node


def quote_column(expr: str, dialect: str | None = None) -> str:
    """Render a column expression with every identifier quoted."""
    if expr == "*":
        return "*"
    if is_identifier(expr):
        return quote_identifier(expr, dialect)
    if expr.endswith(".*") and is_identifier(expr[:-2]):
        return f"{quote_identifier(expr[:-2], dialect)}.*"
    return parse_column_expression(expr, dialect).sql(dialect=dialect, identify=True)


class SqlBuffer:
    """Output buffer for statement text and bound parameters."""

    def __init__(self, dialect: str = "duckdb", placeholder: str = "?"):
        self.dialect = dialect
        self.placeholder = placeholder
        self.parts: list[str] = []
        self.params: list[Any] = []

    def append(self, text: str) -> "SqlBuffer":
        self.parts.append(text)
        return self

    def bind(self, value: Any) -> str:
        """Record a parameter value and return its placeholder."""
        self.params.append(value)
        return self.placeholder

    def quote_column(self, expr: str) -> str:
        return quote_column(expr, self.dialect)

    def quote_table(self, name: str) -> str:
        return quote_identifier(name, self.dialect)

    @property
    def sql(self) -> str:
        return "".join(self.parts)


class Element:
    """Handler for one position of a sub-expression."""

    name = "element"

    def normalize(self, value: Any, previous: list[Any]) -> Any:
        """Validate ``value`` and return its canonical form.

        Args:
            value: Raw element supplied by the caller
            previous: Already normalized elements at earlier positions

        Raises:
            InvalidClauseValueError: If the element is rejected
        """
        return value

    def render(self, value: Any, buffer: SqlBuffer, subexp: tuple) -> None:
        raise NotImplementedError


class ColumnElement(Element):
    """Column name, ``table.column``, ``*`` or a function call like ``COUNT(id)``."""

    name = "column"

    def normalize(self, value: Any, previous: list[Any]) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise InvalidClauseValueError(f"Column must be a non-empty string, got {value!r}")
        value = value.strip()
        if value == "*" or is_identifier(value) or (value.endswith(".*") and is_identifier(value[:-2])):
            return value
        parse_column_expression(value)
        return value

    def render(self, value: Any, buffer: SqlBuffer, subexp: tuple) -> None:
        buffer.append(buffer.quote_column(value))


class OperatorElement(Element):
    name = "operator"

    def normalize(self, value: Any, previous: list[Any]) -> Any:
        if not isinstance(value, str):
            raise InvalidClauseValueError(f"Operator must be a string, got {value!r}")
        operator = " ".join(value.upper().split())
        if operator not in OPERATORS:
            raise InvalidClauseValueError(
                f"Unsupported operator '{value}'. Must be one of: {', '.join(sorted(OPERATORS))}"
            )
        return operator

    def render(self, value: Any, buffer: SqlBuffer, subexp: tuple) -> None:
        buffer.append(value)


class ValueElement(Element):
    """Bound value whose accepted shape depends on the preceding operator."""

    name = "value"

    def __init__(self, operator_position: int = 1):
        self.operator_position = operator_position

    def normalize(self, value: Any, previous: list[Any]) -> Any:
        operator = previous[self.operator_position]
        if operator in LIST_OPERATORS:
            if isinstance(value, (str, bytes, dict)) or not isinstance(value, (Sequence, Set)):
                raise InvalidClauseValueError(f"{operator} expects a finite sequence of values, got {value!r}")
            values = tuple(value)
            for item in values:
                _check_scalar(item, operator)
            return values
        if operator == "BETWEEN":
            if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) or len(value) != 2:
                raise InvalidClauseValueError(f"BETWEEN expects a (low, high) pair, got {value!r}")
            low, high = value
            _check_scalar(low, operator)
            _check_scalar(high, operator)
            return (low, high)
        if operator in NULL_OPERATORS:
            if value is not None and not isinstance(value, bool):
                raise InvalidClauseValueError(f"{operator} expects None, True or False, got {value!r}")
            return value
        _check_scalar(value, operator)
        return value

    def render(self, value: Any, buffer: SqlBuffer, subexp: tuple) -> None:
        operator = subexp[self.operator_position]
        if operator in LIST_OPERATORS:
            buffer.append("(" + ", ".join(buffer.bind(v) for v in value) + ")")
        elif operator == "BETWEEN":
            buffer.append(f"{buffer.bind(value[0])} AND {buffer.bind(value[1])}")
        elif operator in NULL_OPERATORS:
            buffer.append({None: "NULL", True: "TRUE", False: "FALSE"}[value])
        else:
            buffer.append(buffer.bind(value))


class DirectionElement(Element):
    name = "direction"

    def normalize(self, value: Any, previous: list[Any]) -> Any:
        direction = str(value or "ASC").upper()
        if direction not in ("ASC", "DESC"):
            raise InvalidClauseValueError(f"Sort direction must be ASC or DESC, got {value!r}")
        return direction

    def render(self, value: Any, buffer: SqlBuffer, subexp: tuple) -> None:
        buffer.append(value)


def _check_scalar(value: Any, operator: str) -> None:
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        raise InvalidClauseValueError(f"Operator {operator} expects a scalar value, got {value!r}")


class ClauseCompiler:
    """Compiler for one kind of decorated clause.

    Args:
        operator: Clause keyword written before the sub-expressions (e.g. "GROUP BY")
        elements: One handler per sub-expression position
        combinator: Text placed between rendered sub-expressions
    """

    def __init__(self, operator: str, elements: Sequence[Element], combinator: str = ", "):
        self.operator = operator
        self.elements = tuple(elements)
        self.combinator = combinator
        self._subexps: list[Any] = []

    def __len__(self) -> int:
        return len(self._subexps)

    @property
    def subexpressions(self) -> tuple:
        return tuple(self._subexps)

    def normalize(self, value: Any) -> tuple:
        """Check arity and run every element through its handler."""
        if len(self.elements) == 1 and not isinstance(value, tuple):
            value = (value,)
        if not isinstance(value, (tuple, list)) or len(value) != len(self.elements):
            raise InvalidClauseValueError(
                f"{self.operator} sub-expression expects {len(self.elements)} elements "
                f"({', '.join(e.name for e in self.elements)}), got {value!r}"
            )
        normalized: list[Any] = []
        for element, item in zip(self.elements, value):
            normalized.append(element.normalize(item, normalized))
        return tuple(normalized)

    def add_subexpression(self, value: Any) -> "ClauseCompiler":
        self._subexps.append(self.normalize(value))
        return self

    def compile(self, buffer: SqlBuffer) -> None:
        if not self._subexps:
            return
        buffer.append(f"{self.operator} ")
        for i, subexp in enumerate(self._subexps):
            if i:
                buffer.append(self.combinator)
            self.compile_subexpression(subexp, buffer)

    def compile_subexpression(self, subexp: tuple, buffer: SqlBuffer) -> None:
        for i, (element, value) in enumerate(zip(self.elements, subexp)):
            if i:
                buffer.append(" ")
            element.render(value, buffer, subexp)

    def clear(self) -> "ClauseCompiler":
        self._subexps.clear()
        return self

    def clone(self) -> "ClauseCompiler":
        other = copy.copy(self)
        other._subexps = copy.deepcopy(self._subexps)
        return other


@dataclass(frozen=True)
class _Condition:
    connective: str
    elements: tuple


@dataclass(frozen=True)
class _GroupOpen:
    connective: str


@dataclass(frozen=True)
class _GroupClose:
    pass


def _connective(value: str) -> str:
    connective = value.upper()
    if connective not in CONNECTIVES:
        raise InvalidClauseValueError(f"Connective must be AND or OR, got {value!r}")
    return connective


class ConditionClauses(ClauseCompiler):
    """WHERE/HAVING clause: ``(column, operator, value)`` conditions joined by AND/OR.

    Conditions can be nested in parenthesised groups with ``open``/``close``.
    """

    def __init__(self, operator: str):
        super().__init__(operator, (ColumnElement(), OperatorElement(), ValueElement(1)), combinator=" AND ")

    def add_subexpression(self, value: Any, connective: str = "AND") -> "ConditionClauses":
        self._subexps.append(_Condition(_connective(connective), self.normalize(value)))
        return self

    def open(self, connective: str = "AND") -> "ConditionClauses":
        self._subexps.append(_GroupOpen(_connective(connective)))
        return self

    def close(self) -> "ConditionClauses":
        if self._depth() <= 0:
            raise InvalidClauseValueError(f"{self.operator} group closed without a matching open")
        if isinstance(self._subexps[-1], _GroupOpen):
            # empty group
            self._subexps.pop()
        else:
            self._subexps.append(_GroupClose())
        return self

    def _depth(self) -> int:
        depth = 0
        for subexp in self._subexps:
            if isinstance(subexp, _GroupOpen):
                depth += 1
            elif isinstance(subexp, _GroupClose):
                depth -= 1
        return depth

    def compile(self, buffer: SqlBuffer) -> None:
        if not any(isinstance(s, _Condition) for s in self._subexps):
            return
        if self._depth() != 0:
            raise InvalidClauseValueError(f"{self.operator} has {self._depth()} unclosed group(s)")

        buffer.append(f"{self.operator} ")
        need_connective = False
        for subexp in self._subexps:
            if isinstance(subexp, _GroupClose):
                buffer.append(")")
                need_connective = True
                continue
            if need_connective:
                buffer.append(f" {subexp.connective} ")
            if isinstance(subexp, _GroupOpen):
                buffer.append("(")
                need_connective = False
            else:
                self.compile_subexpression(subexp.elements, buffer)
                need_connective = True

    def compile_subexpression(self, subexp: tuple, buffer: SqlBuffer) -> None:
        column, operator, value = subexp
        if value is None and operator in ("=", "!=", "<>"):
            test = "IS NULL" if operator == "=" else "IS NOT NULL"
            buffer.append(f"{buffer.quote_column(column)} {test}")
        elif operator in LIST_OPERATORS and not value:
            # x IN () is not valid SQL
            buffer.append("1 = 0" if operator == "IN" else "1 = 1")
        else:
            super().compile_subexpression(subexp, buffer)


@dataclass
class _Join:
    join_type: str
    table: str
    alias: str | None
    conditions: list[_Condition] = field(default_factory=list)


class JoinClauses(ClauseCompiler):
    """JOIN clauses, each with its own list of ON column comparisons."""

    def __init__(self):
        super().__init__("JOIN", (), combinator=" ")
        self._on = ColumnElement(), OperatorElement(), ColumnElement()

    def add_subexpression(self, value: Any) -> "JoinClauses":
        if not isinstance(value, tuple) or len(value) != 3:
            raise InvalidClauseValueError(f"JOIN expects (table, alias, join_type), got {value!r}")
        table, alias, join_type = value
        if not is_identifier(table):
            raise InvalidClauseValueError(f"Invalid join table '{table}'")
        if alias is not None and not is_identifier(alias):
            raise InvalidClauseValueError(f"Invalid join alias '{alias}'")
        join_type = str(join_type).upper()
        if join_type not in JOIN_TYPES:
            raise InvalidClauseValueError(f"Join type must be one of {', '.join(sorted(JOIN_TYPES))}, got {value!r}")
        self._subexps.append(_Join(join_type, table, alias))
        return self

    def on(self, left: str, operator: str, right: str, connective: str = "AND") -> "JoinClauses":
        """Add a column comparison to the most recent join."""
        if not self._subexps:
            raise InvalidClauseValueError("ON condition added before any JOIN")
        join = self._subexps[-1]
        if join.join_type == "CROSS":
            raise InvalidClauseValueError("CROSS JOIN does not take ON conditions")
        normalized: list[Any] = []
        for element, item in zip(self._on, (left, operator, right)):
            normalized.append(element.normalize(item, normalized))
        if normalized[1] not in COMPARISON_OPERATORS:
            raise InvalidClauseValueError(f"ON conditions compare columns, operator {operator!r} not allowed")
        join.conditions.append(_Condition(_connective(connective), tuple(normalized)))
        return self

    def compile(self, buffer: SqlBuffer) -> None:
        for join in self._subexps:
            buffer.append(f" {join.join_type} JOIN {buffer.quote_table(join.table)}")
            if join.alias:
                buffer.append(f" AS {buffer.quote_table(join.alias)}")
            for i, condition in enumerate(join.conditions):
                buffer.append(" ON " if i == 0 else f" {condition.connective} ")
                left, operator, right = condition.elements
                buffer.append(f"{buffer.quote_column(left)} {operator} {buffer.quote_column(right)}")


def where_clauses() -> ConditionClauses:
    return ConditionClauses("WHERE")


def having_clauses() -> ConditionClauses:
    return ConditionClauses("HAVING")


def group_by_clauses() -> ClauseCompiler:
    return ClauseCompiler("GROUP BY", (ColumnElement(),))


def order_by_clauses() -> ClauseCompiler:
    return ClauseCompiler("ORDER BY", (ColumnElement(), DirectionElement()))
