"""Database adapter abstraction layer and named database registry."""

import logging
import threading

from relorm.db.base import BaseDatabaseAdapter, validate_identifier

__all__ = [
    "BaseDatabaseAdapter",
    "close_databases",
    "connect",
    "get_database",
    "register_database",
    "validate_identifier",
]

logger = logging.getLogger(__name__)

_databases: dict[str, BaseDatabaseAdapter] = {}
_lock = threading.Lock()


def connect(url: str) -> BaseDatabaseAdapter:
    """Open an adapter for a connection URL.

    Args:
        url: "duckdb:///..." or "postgres://..." connection string

    Returns:
        A connected adapter
    """
    if url.startswith("duckdb://"):
        from relorm.db.duckdb import DuckDBAdapter

        return DuckDBAdapter.from_url(url)
    if url.startswith(("postgres://", "postgresql://")):
        from relorm.db.postgres import PostgreSQLAdapter

        return PostgreSQLAdapter.from_url(url)
    raise ValueError(f"Unsupported connection URL: {url}")


def register_database(adapter: BaseDatabaseAdapter, name: str = "default") -> BaseDatabaseAdapter:
    """Make an adapter available to entity metadata under ``name``.

    Re-registering a name replaces the previous adapter without closing it.
    """
    with _lock:
        _databases[name] = adapter
    logger.debug("Registered %s database as '%s'", adapter.dialect, name)
    return adapter


def get_database(name: str = "default") -> BaseDatabaseAdapter:
    """Return the adapter registered under ``name``."""
    try:
        return _databases[name]
    except KeyError:
        raise LookupError(
            f"No database registered as '{name}'. Call register_database() or configure_databases() first."
        ) from None


def close_databases() -> None:
    """Close and forget every registered adapter."""
    with _lock:
        adapters = list(_databases.values())
        _databases.clear()
    for adapter in adapters:
        adapter.close()


def __getattr__(name):
    """Lazy import database adapters to avoid importing optional dependencies."""
    if name == "DuckDBAdapter":
        from relorm.db.duckdb import DuckDBAdapter

        return DuckDBAdapter
    if name == "PostgreSQLAdapter":
        from relorm.db.postgres import PostgreSQLAdapter

        return PostgreSQLAdapter
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
