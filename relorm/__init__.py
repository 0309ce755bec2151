"""relorm: metadata-driven ORM with composable SQL clauses and batched relation loading."""

__version__ = "0.1.0"

from relorm.core.entity import Entity, EntityState
from relorm.core.metadata import EntityMetadata
from relorm.core.query import OrmQueryBuilder
from relorm.core.registry import get_metadata, register
from relorm.core.relation import RelationDefinition
from relorm.core.resolver import RelationResolver
from relorm.core.rules import ValidationRule, Violation, register_rule
from relorm.db import get_database, register_database
from relorm.errors import (
    DatabaseExecutionError,
    EntityDeletedError,
    EntityNotLoadedError,
    EntityStateError,
    InvalidClauseValueError,
    InvalidRuleError,
    OrmError,
    UnknownColumnError,
    UnknownEntityError,
    UnknownRelationError,
    UnknownTableError,
    ValidationError,
)
from relorm.sql.query_builder import QueryBuilder

__all__ = [
    "DatabaseExecutionError",
    "Entity",
    "EntityDeletedError",
    "EntityMetadata",
    "EntityNotLoadedError",
    "EntityState",
    "EntityStateError",
    "InvalidClauseValueError",
    "InvalidRuleError",
    "OrmError",
    "OrmQueryBuilder",
    "QueryBuilder",
    "RelationDefinition",
    "RelationResolver",
    "UnknownColumnError",
    "UnknownEntityError",
    "UnknownRelationError",
    "UnknownTableError",
    "ValidationError",
    "ValidationRule",
    "Violation",
    "get_database",
    "get_metadata",
    "register",
    "register_database",
    "register_rule",
]


def __getattr__(name):  # Lazy import to avoid importing duckdb on package import
    if name == "DuckDBAdapter":
        from relorm.db.duckdb import DuckDBAdapter

        return DuckDBAdapter
    raise AttributeError(name)
