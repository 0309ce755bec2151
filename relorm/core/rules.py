"""Validation rule expressions.

A rule expression is one or more terms joined by ``&&``. A term is a rule
name, optionally followed by literal arguments::

    notEmpty
    between(1, 120)
    notEmpty && digit
    length(2, 50) && regex('^[a-z]+$')

Rule functions receive the value followed by the term's arguments and return
True when the value passes. Every rule except ``notEmpty`` accepts ``None``,
so optional fields only fail when they carry a value.
"""

import ast
import re
from collections.abc import Callable, Sized
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from relorm.errors import InvalidRuleError

RuleFunction = Callable[..., bool]

_TERM_PATTERN = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\((.*)\))?\s*$", re.DOTALL)
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _not_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, Sized):
        return len(value) > 0
    return True


def _digit(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value >= 0
    return isinstance(value, str) and value.isdigit()


def _numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
    except ValueError:
        return False
    return True


def _as_number(value: Any) -> float | None:
    return float(value) if _numeric(value) else None


def _between(value: Any, low: Any, high: Any) -> bool:
    number = _as_number(value)
    return number is not None and low <= number <= high


def _min(value: Any, low: Any) -> bool:
    number = _as_number(value)
    return number is not None and number >= low


def _max(value: Any, high: Any) -> bool:
    number = _as_number(value)
    return number is not None and number <= high


def _length(value: Any, low: int, high: int | None = None) -> bool:
    if not isinstance(value, Sized):
        value = str(value)
    size = len(value)
    return size >= low and (high is None or size <= high)


def _email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL_PATTERN.match(value))


def _regex(value: Any, pattern: str) -> bool:
    return re.search(pattern, str(value)) is not None


def _in(value: Any, *choices: Any) -> bool:
    return value in choices


@dataclass(frozen=True)
class _RuleEntry:
    function: RuleFunction
    message: str
    accepts_none: bool = True

    def format_message(self, term: "RuleTerm", label: str) -> str:
        try:
            return self.message.format(*term.args, label=label)
        except (IndexError, KeyError):
            # template placeholders do not match the term arguments
            return f"{label} failed rule '{term}'"


_RULES: dict[str, _RuleEntry] = {
    "notEmpty": _RuleEntry(_not_empty, "{label} must not be empty", accepts_none=False),
    "digit": _RuleEntry(_digit, "{label} must contain only digits"),
    "numeric": _RuleEntry(_numeric, "{label} must be a number"),
    "between": _RuleEntry(_between, "{label} must be between {0} and {1}"),
    "min": _RuleEntry(_min, "{label} must be at least {0}"),
    "max": _RuleEntry(_max, "{label} must be at most {0}"),
    "length": _RuleEntry(_length, "{label} has an invalid length"),
    "email": _RuleEntry(_email, "{label} must be a valid email address"),
    "regex": _RuleEntry(_regex, "{label} has an invalid format"),
    "in": _RuleEntry(_in, "{label} must be one of the allowed values"),
}


def register_rule(name: str, function: RuleFunction, message: str | None = None) -> None:
    """Add or replace a rule in the vocabulary.

    Args:
        name: Rule name used in expressions
        function: ``function(value, *args) -> bool``
        message: Violation message template; ``{label}`` and positional
            ``{0}``, ``{1}``... refer to the field label and the term arguments
    """
    if not _TERM_PATTERN.match(name) or "(" in name:
        raise InvalidRuleError(f"Invalid rule name '{name}'")
    _RULES[name] = _RuleEntry(function, message or f"{{label}} failed rule '{name}'")


def registered_rules() -> list[str]:
    return sorted(_RULES)


class Violation(BaseModel):
    """One failed rule term for one field."""

    field: str
    label: str
    rule: str
    message: str


@dataclass(frozen=True)
class RuleTerm:
    """A parsed rule name with its literal arguments."""

    name: str
    args: tuple = ()

    def __str__(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name}({', '.join(repr(a) for a in self.args)})"


def parse_rule(expr: str) -> list[RuleTerm]:
    """Parse a rule expression into its ``&&``-joined terms.

    Raises:
        InvalidRuleError: On syntax errors or unknown rule names
    """
    if not isinstance(expr, str) or not expr.strip():
        raise InvalidRuleError(f"Rule expression must be a non-empty string, got {expr!r}")

    terms = []
    for raw in expr.split("&&"):
        match = _TERM_PATTERN.match(raw)
        if not match:
            raise InvalidRuleError(f"Invalid rule term '{raw.strip()}' in '{expr}'")
        name, arg_text = match.groups()
        if name not in _RULES:
            raise InvalidRuleError(f"Unknown rule '{name}' in '{expr}'. Known rules: {', '.join(registered_rules())}")
        args: tuple = ()
        if arg_text is not None and arg_text.strip():
            try:
                args = ast.literal_eval(f"({arg_text},)")
            except (ValueError, SyntaxError) as e:
                raise InvalidRuleError(f"Invalid arguments for rule '{name}' in '{expr}': {e}") from e
        terms.append(RuleTerm(name, args))
    return terms


class ValidationRule(BaseModel):
    """Label and optional rule expression for one entity field."""

    field: str = Field(..., description="Column name")
    label: str = Field(..., description="Human-readable field name used in messages")
    expr: str | None = Field(default=None, description="Rule expression, e.g. 'notEmpty && digit'")

    _terms: list[RuleTerm] = PrivateAttr(default_factory=list)

    @model_validator(mode="after")
    def _parse(self) -> "ValidationRule":
        self._terms = parse_rule(self.expr) if self.expr is not None else []
        return self

    @property
    def terms(self) -> list[RuleTerm]:
        return list(self._terms)

    def check(self, value: Any) -> list[Violation]:
        """Evaluate every term against ``value`` and return the failures."""
        violations = []
        for term in self._terms:
            entry = _RULES[term.name]
            if value is None and entry.accepts_none:
                continue
            try:
                passed = bool(entry.function(value, *term.args))
            except (TypeError, ValueError):
                passed = False
            if not passed:
                violations.append(
                    Violation(
                        field=self.field,
                        label=self.label,
                        rule=str(term),
                        message=entry.format_message(term, self.label),
                    )
                )
        return violations
