"""Error taxonomy for the ORM core."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from relorm.core.rules import Violation


class OrmError(Exception):
    """Base class for every error raised by relorm."""

    pass


class ValidationError(OrmError):
    """Raised before any write when one or more validation rules fail.

    All violations are collected; the first failing rule does not stop
    evaluation of the others.
    """

    def __init__(self, entity: str, violations: list["Violation"]):
        self.entity = entity
        self.violations = violations
        super().__init__(
            f"Entity '{entity}' validation failed:\n" + "\n".join(f"  - {v.message}" for v in violations)
        )

    @property
    def fields(self) -> list[str]:
        """Names of the fields with at least one violation, in report order."""
        return list(dict.fromkeys(v.field for v in self.violations))


class UnknownColumnError(OrmError, AttributeError):
    """Raised when reading or writing a name that is neither a column nor a relation."""

    def __init__(self, entity: str, column: str):
        self.entity = entity
        self.column = column
        super().__init__(f"Entity '{entity}' has no column or relation '{column}'")


class UnknownRelationError(OrmError):
    """Raised when a relation name is not declared or its related type is not registered."""

    def __init__(self, entity: str, relation: str, reason: str | None = None):
        self.entity = entity
        self.relation = relation
        message = f"Entity '{entity}' has no relation '{relation}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownEntityError(OrmError):
    """Raised when looking up metadata for an entity type that was never registered."""

    pass


class EntityStateError(OrmError):
    """Raised when an operation is not allowed in the entity's current persistence state."""

    pass


class EntityNotLoadedError(EntityStateError):
    """Raised by update/delete on an entity that is not bound to a stored row."""

    pass


class EntityDeletedError(EntityStateError):
    """Raised by any persistence operation on a deleted entity."""

    pass


class UnknownTableError(OrmError):
    """Raised when column introspection finds no table for an entity without declared columns."""

    pass


class InvalidClauseValueError(OrmError, ValueError):
    """Raised when a query clause receives a malformed sub-expression."""

    pass


class InvalidRuleError(OrmError):
    """Raised when a validation rule expression cannot be parsed or names an unknown rule."""

    pass


class DatabaseExecutionError(OrmError):
    """Wraps an error reported by the database driver.

    The driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, sql: str | None = None, params: Any = None):
        self.sql = sql
        self.params = params
        super().__init__(message)
