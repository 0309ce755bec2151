"""Process-wide registry of entity types and their metadata."""

import logging
import threading
from typing import TYPE_CHECKING, TypeVar

from relorm.core.metadata import EntityMetadata
from relorm.errors import UnknownEntityError

if TYPE_CHECKING:
    from relorm.core.entity import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=type)


class MetadataRegistry:
    """Maps entity types to their metadata.

    Types are registered explicitly (usually at import time with the
    ``register`` decorator). Metadata is built on first access, exactly once
    per type, even when several threads ask for it at the same time; later
    reads take no lock.
    """

    def __init__(self):
        self._types: dict[str, type] = {}
        self._metadata: dict[type, EntityMetadata] = {}
        # reentrant: a define() hook may look up other types
        self._lock = threading.RLock()

    def __contains__(self, model: object) -> bool:
        if isinstance(model, str):
            return model in self._types
        return isinstance(model, type) and self._types.get(model.__name__) is model

    def register(self, model: E) -> E:
        """Register an entity class. Returns the class so it can be used as a decorator."""
        with self._lock:
            existing = self._types.get(model.__name__)
            if existing is not None and existing is not model:
                raise ValueError(
                    f"Entity name '{model.__name__}' is already registered by {existing.__module__}.{existing.__qualname__}"
                )
            self._types[model.__name__] = model
        return model

    def resolve(self, model: "type[Entity] | str") -> "type[Entity]":
        """Return the registered class for a class or class name."""
        if isinstance(model, str):
            cls = self._types.get(model)
            if cls is None:
                raise UnknownEntityError(f"Entity '{model}' is not registered")
            return cls
        if model not in self:
            raise UnknownEntityError(f"Entity '{model.__name__}' is not registered")
        return model

    def get_metadata(self, model: "type[Entity] | str") -> EntityMetadata:
        cls = self.resolve(model)
        metadata = self._metadata.get(cls)
        if metadata is not None:
            return metadata
        with self._lock:
            metadata = self._metadata.get(cls)
            if metadata is None:
                metadata = self._build(cls)
                self._metadata[cls] = metadata
        return metadata

    def _build(self, cls: "type[Entity]") -> EntityMetadata:
        metadata = EntityMetadata(
            cls,
            table=getattr(cls, "__table__", None),
            primary_key=getattr(cls, "__primary_key__", "id"),
            label=getattr(cls, "__label__", None),
            db_name=getattr(cls, "__db__", "default"),
            columns=getattr(cls, "__columns__", None),
        )
        define = getattr(cls, "define", None)
        if define is not None:
            define(metadata)
        logger.info(
            "Built metadata for entity '%s' (table=%s, relations=%s)",
            metadata.name,
            metadata.table,
            sorted(metadata.relations),
        )
        return metadata

    def entities(self) -> list[type]:
        return list(self._types.values())

    def clear(self) -> None:
        """Forget every registered type and built metadata."""
        with self._lock:
            self._types.clear()
            self._metadata.clear()


registry = MetadataRegistry()


def register(model: E) -> E:
    """Register an entity class with the global registry."""
    return registry.register(model)


def get_metadata(model: "type[Entity] | str") -> EntityMetadata:
    """Get (building on first access) the metadata of a registered entity type."""
    return registry.get_metadata(model)


def resolve_entity(model: "type[Entity] | str") -> "type[Entity]":
    return registry.resolve(model)
