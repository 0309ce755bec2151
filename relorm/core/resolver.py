"""Lazy, eager and cascading resolution of declared relations."""

import logging
from typing import TYPE_CHECKING, Any

from relorm.core.relation import RelationDefinition
from relorm.errors import ValidationError

if TYPE_CHECKING:
    from relorm.core.entity import Entity
    from relorm.core.metadata import EntityMetadata
    from relorm.core.query import OrmQueryBuilder

logger = logging.getLogger(__name__)


class RelationResolver:
    """Resolves the relations declared on one entity type.

    Join keys:
    - belongs_to: owner ``foreign_key`` = related primary key
    - has_one / has_many: owner primary key = related ``foreign_key``
    """

    def __init__(self, metadata: "EntityMetadata"):
        self.metadata = metadata

    def _empty(self, relation: RelationDefinition, related: "EntityMetadata") -> Any:
        return [] if relation.is_collection else related.model()

    def related_query(self, relation: RelationDefinition, key: Any) -> "OrmQueryBuilder":
        """Query on the related type filtered by the join key (a value or a list for IN)."""
        related = relation.related_metadata(self.metadata)
        query = related.query_builder()
        column = relation.related_key(related)
        if isinstance(key, list):
            query.where(column, "IN", key)
        else:
            query.where(column, "=", key)
        return relation.apply_conditions(query)

    def load(self, entity: "Entity", name: str) -> Any:
        """Lazily load one relation of one entity.

        Returns:
            A list for has_many, else a single entity (unloaded if nothing matched)
        """
        relation = self.metadata.get_relation(name)
        related = relation.related_metadata(self.metadata)
        key = entity.get(relation.owner_key(self.metadata))
        if key is None:
            return self._empty(relation, related)

        query = self.related_query(relation, key)
        if relation.is_collection:
            return query.find_all()
        return query.find()

    def eager_load(self, entities: list["Entity"], names: list[str] | tuple[str, ...]) -> None:
        """Load relations for a whole result set, one query per relation."""
        for name in names:
            relation = self.metadata.get_relation(name)
            related = relation.related_metadata(self.metadata)
            owner_key = relation.owner_key(self.metadata)
            related_key = relation.related_key(related)

            keys = list(dict.fromkeys(k for k in (e.get(owner_key) for e in entities) if k is not None))
            groups: dict[Any, list["Entity"]] = {}
            if keys:
                for item in self.related_query(relation, keys).find_all():
                    groups.setdefault(item.get(related_key), []).append(item)
            logger.debug(
                "Eager loaded %s.%s for %d entities (%d keys)", self.metadata.name, name, len(entities), len(keys)
            )

            for entity in entities:
                matches = groups.get(entity.get(owner_key), [])
                if relation.is_collection:
                    value = list(matches)
                elif matches:
                    # one instance per owner, as with lazy loading
                    value = related.model._hydrate(dict(matches[0]._data))
                else:
                    value = related.model()
                entity._related[name] = value

    def count_related(self, entity: "Entity", name: str) -> int:
        relation = self.metadata.get_relation(name)
        key = entity.get(relation.owner_key(self.metadata))
        if key is None:
            return 0
        return self.related_query(relation, key).count()

    def remove_relations(self, entity: "Entity", name: str, value: Any = None) -> int:
        """Rewrite the foreign key of the relation to ``value``; rows are kept.

        Returns:
            Number of rows whose foreign key changed
        """
        relation = self.metadata.get_relation(name)
        entity._related.pop(name, None)

        if relation.is_belongs_to:
            return self._relink_owner(entity, relation.foreign_key, value)

        key = entity.get(relation.owner_key(self.metadata))
        if key is None:
            return 0
        affected = self.related_query(relation, key).update({relation.foreign_key: value})
        logger.debug("Unlinked %d %s rows from %s %r", affected, name, self.metadata.name, key)
        return affected

    def _relink_owner(self, entity: "Entity", foreign_key: str, value: Any) -> int:
        """Write only the owner's foreign key; other unsaved edits stay dirty."""
        if entity.get(foreign_key) == value and entity._original.get(foreign_key) == value:
            return 0
        violations = self.metadata.validate({**entity._data, foreign_key: value}, fields=[foreign_key])
        if violations:
            raise ValidationError(self.metadata.name, violations)

        query = self.metadata.query_builder().where(self.metadata.primary_key, "=", entity.pk)
        affected = query.update({foreign_key: value})
        entity._data[foreign_key] = value
        entity._original[foreign_key] = value
        logger.debug("Unlinked %s %r via %s", self.metadata.name, entity.pk, foreign_key)
        return affected

    def delete_related(self, entity: "Entity", name: str, visited: set[tuple[str, Any]] | None = None) -> int:
        """Delete every related entity through its own ``delete``.

        Recursion only follows relations declared with ``cascade=True`` on each
        deleted type; ``visited`` holds ``(entity name, primary key)`` pairs
        already deleted in this cascade so cyclic graphs terminate.

        Returns:
            Number of related entities deleted
        """
        visited = set() if visited is None else visited
        relation = self.metadata.get_relation(name)
        targets = self.load(entity, name)
        if not relation.is_collection:
            targets = [targets] if targets.is_loaded() else []

        deleted = 0
        for target in targets:
            identity = (target.metadata().name, target.pk)
            if identity in visited:
                continue
            target._delete(visited)
            deleted += 1

        entity._related[name] = [] if relation.is_collection else relation.related_metadata(self.metadata).model()
        if deleted:
            logger.info("Deleted %d %s related to %s %r", deleted, name, self.metadata.name, entity.pk)
        return deleted
