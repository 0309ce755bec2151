"""SQL clause compilation and statement building."""

from relorm.sql.clauses import ClauseCompiler, ConditionClauses, JoinClauses, SqlBuffer
from relorm.sql.query_builder import CompiledQuery, QueryBuilder

__all__ = [
    "ClauseCompiler",
    "CompiledQuery",
    "ConditionClauses",
    "JoinClauses",
    "QueryBuilder",
    "SqlBuffer",
]
