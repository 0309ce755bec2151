"""Query builder bound to an entity type."""

from typing import TYPE_CHECKING

from relorm.errors import InvalidClauseValueError
from relorm.sql.query_builder import QueryBuilder

if TYPE_CHECKING:
    from relorm.core.entity import Entity
    from relorm.core.metadata import EntityMetadata


class OrmQueryBuilder(QueryBuilder):
    """Query builder that hydrates rows into entities.

    Relations named with ``with_`` are loaded eagerly: one extra query per
    relation for the whole result set.
    """

    def __init__(self, metadata: "EntityMetadata", alias: str | None = None):
        if not metadata.table:
            raise InvalidClauseValueError(f"Entity '{metadata.name}' has no table")
        super().__init__(metadata.db, metadata.table, alias)
        self.metadata = metadata
        self._with: list[str] = []

    def with_(self, *names: str) -> "OrmQueryBuilder":
        """Request eager loading of the named relations."""
        for name in names:
            self.metadata.get_relation(name)
            if name not in self._with:
                self._with.append(name)
        return self

    @property
    def eager_relations(self) -> tuple[str, ...]:
        return tuple(self._with)

    def _default_columns(self) -> list[str]:
        return [f"{self._alias or self._table}.*"]

    def clear(self) -> "OrmQueryBuilder":
        super().clear()
        self._with = []
        return self

    def clone(self) -> "OrmQueryBuilder":
        other = super().clone()
        other._with = list(self._with)
        return other

    def find(self) -> "Entity":
        """Return the first matching entity, or an unloaded instance if none matched."""
        row = self.find_row()
        model = self.metadata.model
        if row is None:
            return model()
        entity = model._hydrate(row)
        if self._with:
            self._eager_load([entity])
        return entity

    def find_all(self) -> list["Entity"]:
        """Return every matching entity, in result order."""
        model = self.metadata.model
        entities = [model._hydrate(row) for row in self.find_rows()]
        if self._with and entities:
            self._eager_load(entities)
        return entities

    def _eager_load(self, entities: list["Entity"]) -> None:
        from relorm.core.resolver import RelationResolver

        RelationResolver(self.metadata).eager_load(entities, self._with)
