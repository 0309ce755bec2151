"""Relation definitions between entity types."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from relorm.errors import UnknownEntityError, UnknownRelationError

if TYPE_CHECKING:
    from relorm.core.metadata import EntityMetadata


class RelationDefinition(BaseModel):
    """Represents a declared relation from one entity type to another.

    Relation types:
    - belongs_to: This entity holds a foreign key pointing at the related primary key
    - has_one: The related entity holds a foreign key pointing at this primary key (one row)
    - has_many: Same as has_one, resolved to an ordered list of rows
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(description="Relation name, also the attribute name on the entity")
    type: Literal["belongs_to", "has_one", "has_many"] = Field(description="Type of relation")
    model: Any = Field(description="Related entity class or its class name")
    foreign_key: str = Field(description="Foreign key column (on this entity for belongs_to, else on the related one)")
    conditions: Callable[[Any], Any] | None = Field(
        default=None, description="Extra filter applied to the related query builder"
    )
    cascade: bool = Field(default=False, description="Delete related rows when the owner is deleted")

    @property
    def is_belongs_to(self) -> bool:
        return self.type == "belongs_to"

    @property
    def is_collection(self) -> bool:
        return self.type == "has_many"

    @property
    def model_name(self) -> str:
        return self.model if isinstance(self.model, str) else self.model.__name__

    def related_metadata(self, owner: "EntityMetadata") -> "EntityMetadata":
        """Look up the related type's metadata.

        Raises:
            UnknownRelationError: If the related type was never registered
        """
        from relorm.core.registry import get_metadata

        try:
            return get_metadata(self.model)
        except UnknownEntityError as e:
            raise UnknownRelationError(owner.name, self.name, str(e)) from e

    def owner_key(self, owner: "EntityMetadata") -> str:
        """Column on the owning entity whose value identifies the related rows."""
        return self.foreign_key if self.is_belongs_to else owner.primary_key

    def related_key(self, related: "EntityMetadata") -> str:
        """Column on the related entity matched against ``owner_key``."""
        return related.primary_key if self.is_belongs_to else self.foreign_key

    def apply_conditions(self, query: Any) -> Any:
        if self.conditions is not None:
            self.conditions(query)
        return query
