"""Entity base class: attribute state, dirty tracking and persistence lifecycle."""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from relorm.core.registry import get_metadata
from relorm.errors import (
    EntityDeletedError,
    EntityNotLoadedError,
    EntityStateError,
    UnknownColumnError,
    ValidationError,
)

if TYPE_CHECKING:
    from relorm.core.metadata import EntityMetadata
    from relorm.core.query import OrmQueryBuilder

logger = logging.getLogger(__name__)


class EntityState(str, Enum):
    """Persistence state of an entity instance."""

    NEW = "new"
    LOADED = "loaded"
    DELETED = "deleted"


class Entity:
    """A live record bound to one table row through its primary key.

    Subclasses are registered with ``relorm.register`` and declare their
    rules, relations and event handlers in the ``define`` hook::

        @register
        class UserModel(Entity):
            __table__ = "user"

            @classmethod
            def define(cls, meta):
                meta.add_rule("name", "Name", "notEmpty")
                meta.has_many("addresses", "AddressModel")

    Attributes are addressed by column name with ``get``/``set``, item access
    or attribute access. Relation names resolve lazily to related entities and
    are cached on the instance until reassigned.
    """

    def __init__(self, pk: Any = None, **values: Any):
        """Create a new entity, or load the row with primary key ``pk``.

        When no row matches ``pk`` the instance stays new and ``is_loaded()``
        returns False.
        """
        self._data: dict[str, Any] = {}
        self._original: dict[str, Any] = {}
        self._related: dict[str, Any] = {}
        self._state = EntityState.NEW
        if pk is not None:
            metadata = self.metadata()
            row = self.query_builder().where(metadata.primary_key, "=", pk).find_row()
            if row is not None:
                self._load_row(row)
        if values:
            self.values(**values)

    @classmethod
    def define(cls, meta: "EntityMetadata") -> None:
        """Declare rules, relations and event handlers on ``meta``."""

    @classmethod
    def metadata(cls) -> "EntityMetadata":
        return get_metadata(cls)

    @classmethod
    def query_builder(cls, alias: str | None = None) -> "OrmQueryBuilder":
        from relorm.core.query import OrmQueryBuilder

        return OrmQueryBuilder(cls.metadata(), alias)

    @classmethod
    def _hydrate(cls, row: dict[str, Any]) -> "Entity":
        entity = cls()
        entity._load_row(row)
        return entity

    def _load_row(self, row: dict[str, Any]) -> None:
        self._data = dict(row)
        self._original = dict(row)
        self._related = {}
        self._state = EntityState.LOADED

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> EntityState:
        return self._state

    def is_loaded(self) -> bool:
        return self._state is EntityState.LOADED

    @property
    def pk(self) -> Any:
        return self._data.get(self.metadata().primary_key)

    def dirty(self) -> dict[str, Any]:
        """Columns whose value differs from the last loaded or saved snapshot."""
        return {
            column: value
            for column, value in self._data.items()
            if column not in self._original or self._original[column] != value
        }

    def _require_persisted(self, operation: str) -> None:
        name = self.metadata().name
        if self._state is EntityState.DELETED:
            raise EntityDeletedError(f"Cannot {operation} deleted entity '{name}' ({self.pk!r})")
        if self._state is not EntityState.LOADED:
            raise EntityNotLoadedError(f"Cannot {operation} entity '{name}': it is not loaded")

    def _fire(self, event: str) -> None:
        handler = self.metadata().get_event_handler(event)
        if handler is not None:
            handler(self)

    # -- attributes --------------------------------------------------------

    def get(self, name: str) -> Any:
        """Read a column value or a (lazily loaded) relation."""
        metadata = self.metadata()
        if name in metadata.relations:
            if name not in self._related:
                from relorm.core.resolver import RelationResolver

                self._related[name] = RelationResolver(metadata).load(self, name)
            return self._related[name]
        if name in self._data:
            return self._data[name]
        if metadata.has_column(name):
            return None
        raise UnknownColumnError(metadata.name, name)

    def set(self, name: str, value: Any) -> "Entity":
        """Write a column value or assign a relation."""
        metadata = self.metadata()
        if name in metadata.relations:
            self._set_related(name, value)
            return self
        if not metadata.has_column(name):
            raise UnknownColumnError(metadata.name, name)
        if (
            name == metadata.primary_key
            and self._state is not EntityState.NEW
            and value != self._data.get(name)
        ):
            raise EntityStateError(f"Primary key '{name}' of entity '{metadata.name}' cannot be changed")
        self._data[name] = value
        return self

    def values(self, data: dict[str, Any] | None = None, **pairs: Any) -> "Entity":
        """Set several attributes at once."""
        for name, value in {**(data or {}), **pairs}.items():
            self.set(name, value)
        return self

    def _set_related(self, name: str, value: Any) -> None:
        relation = self.metadata().get_relation(name)
        if relation.is_collection:
            if isinstance(value, Entity) or value is None:
                raise TypeError(f"Relation '{name}' expects a list of entities, got {value!r}")
            value = list(value)
        elif relation.is_belongs_to:
            if value is not None and not isinstance(value, Entity):
                raise TypeError(f"Relation '{name}' expects an entity, got {value!r}")
            related_key = value.get(value.metadata().primary_key) if value is not None else None
            self.set(relation.foreign_key, related_key)
        self._related[name] = value

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: str) -> bool:
        return name in self._data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r}, state={self._state.value})"

    def as_dict(self, relations: bool = False) -> dict[str, Any]:
        """Plain dict of every column (unset ones as None), optionally with already-loaded relations."""
        result = {column: self._data.get(column) for column in self.metadata().columns}
        result.update(self._data)
        if relations:
            for name, value in self._related.items():
                if isinstance(value, list):
                    result[name] = [item.as_dict(relations=True) for item in value]
                elif isinstance(value, Entity):
                    result[name] = value.as_dict(relations=True) if value.is_loaded() else None
                else:
                    result[name] = value
        return result

    # -- persistence -------------------------------------------------------

    def create(self) -> Any:
        """Validate and insert this entity.

        Returns:
            The generated (or explicitly set) primary key

        Raises:
            ValidationError: If any ruled field fails; nothing is written
        """
        metadata = self.metadata()
        if self._state is EntityState.DELETED:
            raise EntityDeletedError(f"Cannot create deleted entity '{metadata.name}'")
        if self._state is EntityState.LOADED:
            raise EntityStateError(f"Entity '{metadata.name}' ({self.pk!r}) is already created")

        self._fire("before_save")
        self._fire("before_create")

        violations = metadata.validate(self._data)
        if violations:
            raise ValidationError(metadata.name, violations)

        pk_column = metadata.primary_key
        data = {c: v for c, v in self._data.items() if not (c == pk_column and v is None)}
        pk = self.query_builder().insert(data, returning=pk_column)
        if pk is not None:
            self._data[pk_column] = pk
        self._original = dict(self._data)
        self._state = EntityState.LOADED
        logger.debug("Created %s %r", metadata.name, self.pk)

        self._fire("after_create")
        self._fire("after_save")
        return self.pk

    def update(self) -> bool:
        """Write the dirty columns. A clean entity is a successful no-op."""
        self._require_persisted("update")
        if not self.dirty():
            return True

        self._fire("before_save")
        self._fire("before_update")

        metadata = self.metadata()
        dirty = self.dirty()
        if not dirty:
            return True
        violations = metadata.validate(self._data, fields=dirty)
        if violations:
            raise ValidationError(metadata.name, violations)

        affected = self.query_builder().where(metadata.primary_key, "=", self.pk).update(dirty)
        self._original = dict(self._data)
        logger.debug("Updated %s %r: %s", metadata.name, self.pk, sorted(dirty))

        self._fire("after_update")
        self._fire("after_save")
        return affected > 0

    def save(self) -> Any:
        """``update()`` a loaded entity, ``create()`` any other."""
        if self._state is EntityState.LOADED:
            return self.update()
        return self.create()

    def delete(self) -> bool:
        """Delete the row, cascading into relations declared with ``cascade=True``."""
        self._require_persisted("delete")
        return self._delete(set())

    def _delete(self, visited: "set[tuple[str, Any]]") -> bool:
        from relorm.core.resolver import RelationResolver

        metadata = self.metadata()
        visited.add((metadata.name, self.pk))
        self._fire("before_delete")

        resolver = RelationResolver(metadata)
        for relation in metadata.relations.values():
            if relation.cascade and not relation.is_belongs_to:
                resolver.delete_related(self, relation.name, visited)

        affected = self.query_builder().where(metadata.primary_key, "=", self.pk).delete()
        self._state = EntityState.DELETED
        logger.debug("Deleted %s %r", metadata.name, self.pk)

        self._fire("after_delete")
        return affected > 0

    def reload(self) -> "Entity":
        """Re-read the row, discarding unsaved changes and cached relations."""
        self._require_persisted("reload")
        metadata = self.metadata()
        row = self.query_builder().where(metadata.primary_key, "=", self.pk).find_row()
        if row is None:
            raise EntityNotLoadedError(f"Entity '{metadata.name}' ({self.pk!r}) no longer exists")
        self._load_row(row)
        return self

    # -- relations ---------------------------------------------------------

    def count_related(self, name: str) -> int:
        from relorm.core.resolver import RelationResolver

        return RelationResolver(self.metadata()).count_related(self, name)

    def remove_relations(self, name: str, value: Any = None) -> int:
        """Point the relation's foreign key at ``value`` without deleting rows."""
        from relorm.core.resolver import RelationResolver

        self._require_persisted("unlink relations of")
        return RelationResolver(self.metadata()).remove_relations(self, name, value)

    def delete_related(self, name: str) -> int:
        """Delete every related entity through its own ``delete``."""
        from relorm.core.resolver import RelationResolver

        self._require_persisted("delete relations of")
        return RelationResolver(self.metadata()).delete_related(self, name, {(self.metadata().name, self.pk)})
