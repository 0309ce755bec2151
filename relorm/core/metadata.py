"""Per-entity-type metadata: table binding, rules, relations and lifecycle hooks."""

import logging
import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from relorm.core.relation import RelationDefinition
from relorm.core.rules import ValidationRule, Violation
from relorm.db import get_database
from relorm.db.base import BaseDatabaseAdapter, validate_identifier
from relorm.errors import UnknownRelationError, UnknownTableError

if TYPE_CHECKING:
    from relorm.core.entity import Entity
    from relorm.core.query import OrmQueryBuilder

logger = logging.getLogger(__name__)

EVENTS = (
    "before_create",
    "after_create",
    "before_update",
    "after_update",
    "before_save",
    "after_save",
    "before_delete",
    "after_delete",
)

EventHandler = Callable[["Entity"], Any]


def entity_name(model: type | str) -> str:
    """Lowercased class name without a trailing ``Model`` suffix."""
    name = model if isinstance(model, str) else model.__name__
    if name.endswith("Model") and name != "Model":
        name = name[: -len("Model")]
    return name.lower()


class EntityMetadata:
    """Schema, rule and relation declarations for one entity type.

    Built once per type by the registry and read-only afterwards, except for
    ``table`` which may be reassigned once.
    """

    def __init__(
        self,
        model: type["Entity"],
        table: str | None = None,
        primary_key: str = "id",
        label: str | None = None,
        db_name: str = "default",
        columns: Iterable[str] | None = None,
    ):
        self.model = model
        self.name = entity_name(model)
        self.label = label or self.name
        self.db_name = db_name
        self.primary_key = validate_identifier(primary_key, "primary key")
        self.default_foreign_key = f"{self.name}_id"
        self.relations: dict[str, RelationDefinition] = {}
        self.rules: dict[str, ValidationRule] = {}
        self.event_handlers: dict[str, EventHandler | None] = dict.fromkeys(EVENTS)

        self._table = validate_identifier(table or self.name, "table name")
        self._table_reassigned = False
        self._columns: tuple[str, ...] | None = tuple(columns) if columns else None
        self._declared_columns = self._columns is not None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"EntityMetadata(name={self.name!r}, table={self._table!r}, primary_key={self.primary_key!r})"

    # -- table binding -----------------------------------------------------

    @property
    def table(self) -> str:
        return self._table

    @table.setter
    def table(self, value: str) -> None:
        if self._table_reassigned:
            raise AttributeError(f"Table of entity '{self.name}' was already reassigned to '{self._table}'")
        self._table = validate_identifier(value, "table name")
        self._table_reassigned = True
        with self._lock:
            if not self._declared_columns:
                self._columns = None

    @property
    def db(self) -> BaseDatabaseAdapter:
        return get_database(self.db_name)

    @property
    def columns(self) -> tuple[str, ...]:
        """Declared columns, or the table's columns as reported by the database.

        Raises:
            UnknownTableError: If the table has no columns yet; nothing is cached,
                so the next access introspects again
        """
        if self._columns is None:
            with self._lock:
                if self._columns is None:
                    schema, _, table = self._table.rpartition(".")
                    introspected = tuple(c["column_name"] for c in self.db.get_columns(table, schema or None))
                    if not introspected:
                        raise UnknownTableError(
                            f"Table '{self._table}' of entity '{self.name}' does not exist or has no columns"
                        )
                    logger.debug("Introspected %d columns for table '%s'", len(introspected), self._table)
                    self._columns = introspected
        return self._columns

    def has_column(self, name: str) -> bool:
        return name in self.columns

    # -- rules -------------------------------------------------------------

    def add_rule(self, field: str, label: str, rule: str | None = None) -> "EntityMetadata":
        """Register (or overwrite) the label and rule expression for a field."""
        self.rules[field] = ValidationRule(field=field, label=label, expr=rule)
        return self

    @property
    def labels(self) -> dict[str, str]:
        return {field: rule.label for field, rule in self.rules.items()}

    def label_of(self, field: str) -> str:
        rule = self.rules.get(field)
        return rule.label if rule else field

    def validate(self, values: dict[str, Any], fields: Iterable[str] | None = None) -> list[Violation]:
        """Check ruled fields against ``values``.

        Args:
            values: Current attribute values
            fields: Restrict the check to these fields (default: every ruled field)

        Returns:
            All violations, in rule registration order
        """
        selected = None if fields is None else set(fields)
        violations: list[Violation] = []
        for field, rule in self.rules.items():
            if selected is not None and field not in selected:
                continue
            violations.extend(rule.check(values.get(field)))
        return violations

    # -- relations ---------------------------------------------------------

    def _add_relation(
        self,
        type_: str,
        name: str,
        related: type["Entity"] | str,
        foreign_key: str | None,
        conditions: Callable[[Any], Any] | None,
        cascade: bool,
    ) -> "EntityMetadata":
        if foreign_key is None:
            # belongs_to: key named after the related type; has_*: after this type
            foreign_key = f"{entity_name(related)}_id" if type_ == "belongs_to" else self.default_foreign_key
        validate_identifier(foreign_key, "foreign key")
        self.relations[name] = RelationDefinition(
            name=name,
            type=type_,
            model=related,
            foreign_key=foreign_key,
            conditions=conditions,
            cascade=cascade,
        )
        return self

    def belongs_to(
        self,
        name: str,
        related: type["Entity"] | str,
        foreign_key: str | None = None,
        conditions: Callable[[Any], Any] | None = None,
    ) -> "EntityMetadata":
        return self._add_relation("belongs_to", name, related, foreign_key, conditions, cascade=False)

    def has_one(
        self,
        name: str,
        related: type["Entity"] | str,
        foreign_key: str | None = None,
        conditions: Callable[[Any], Any] | None = None,
        cascade: bool = False,
    ) -> "EntityMetadata":
        return self._add_relation("has_one", name, related, foreign_key, conditions, cascade)

    def has_many(
        self,
        name: str,
        related: type["Entity"] | str,
        foreign_key: str | None = None,
        conditions: Callable[[Any], Any] | None = None,
        cascade: bool = False,
    ) -> "EntityMetadata":
        return self._add_relation("has_many", name, related, foreign_key, conditions, cascade)

    def has_relation(self, name: str) -> bool:
        return name in self.relations

    def get_relation(self, name: str) -> RelationDefinition:
        try:
            return self.relations[name]
        except KeyError:
            raise UnknownRelationError(self.name, name) from None

    # -- events ------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> "EntityMetadata":
        if event not in self.event_handlers:
            raise ValueError(f"Unknown event '{event}'. Must be one of: {', '.join(EVENTS)}")
        self.event_handlers[event] = handler
        return self

    def get_event_handler(self, event: str) -> EventHandler | None:
        return self.event_handlers.get(event)

    # -- querying ----------------------------------------------------------

    def query_builder(self) -> "OrmQueryBuilder":
        from relorm.core.query import OrmQueryBuilder

        return OrmQueryBuilder(self)
