"""Configuration file format for relorm."""

import json
import logging
import os
from pathlib import Path
from typing import Literal
from urllib.parse import quote

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("relorm.yaml", "relorm.yml", "relorm.json")
CONFIG_ENV_VAR = "RELORM_CONFIG"


class DuckDBConnection(BaseModel):
    """DuckDB connection configuration."""

    type: Literal["duckdb"] = "duckdb"
    path: str = Field(default=":memory:", description="Path to DuckDB database file or :memory:")


class PostgreSQLConnection(BaseModel):
    """PostgreSQL connection configuration."""

    type: Literal["postgres"] = "postgres"
    host: str = Field(..., description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    database: str = Field(..., description="Database name")
    username: str = Field(..., description="Username")
    password: str | None = Field(default=None, description="Password")


Connection = DuckDBConnection | PostgreSQLConnection


class OrmConfig(BaseModel):
    """relorm configuration file format.

    Can be saved as relorm.yaml or relorm.json. Entity types pick their
    database by name (``__db__``, default "default").

    Example YAML:
        databases:
          default:
            type: duckdb
            path: data/app.duckdb
          reporting:
            type: postgres
            host: localhost
            database: reports
            username: app
    """

    databases: dict[str, Connection] = Field(
        default_factory=lambda: {"default": DuckDBConnection()},
        description="Named database connections",
    )

    def resolve_paths(self, base_dir: Path | None = None) -> "OrmConfig":
        """Resolve relative DuckDB paths against ``base_dir`` (defaults to cwd).

        Returns:
            New config with resolved paths
        """
        base = base_dir or Path.cwd()

        databases: dict[str, Connection] = {}
        for name, connection in self.databases.items():
            if isinstance(connection, DuckDBConnection) and connection.path != ":memory:":
                db_p = Path(connection.path)
                if not db_p.is_absolute():
                    db_p = (base / db_p).resolve()
                connection = DuckDBConnection(type="duckdb", path=str(db_p))
            databases[name] = connection

        return OrmConfig(databases=databases)


_LOADERS = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


def load_config(config_path: Path) -> OrmConfig:
    """Load configuration from a YAML or JSON file.

    Relative DuckDB paths are resolved against the file's directory.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file extension is not .yaml, .yml or .json
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    loader = _LOADERS.get(config_path.suffix.lower())
    if loader is None:
        raise ValueError(f"Unsupported config format: {config_path.suffix}. Use .yaml, .yml, or .json")

    with open(config_path) as f:
        data = loader(f) or {}

    logger.debug("Loaded config from %s", config_path)
    return OrmConfig(**data).resolve_paths(config_path.parent)


def find_config(start_dir: Path | None = None) -> Path | None:
    """Locate the config file.

    ``RELORM_CONFIG`` wins when set; otherwise ``start_dir`` (default cwd) and
    each of its parents are searched for relorm.yaml, relorm.yml or relorm.json.
    """
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override)

    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        for name in CONFIG_FILENAMES:
            if (directory / name).exists():
                return directory / name
    return None


def build_connection_string(connection: Connection) -> str:
    """Build a connection URL understood by ``relorm.db.connect``."""
    if isinstance(connection, DuckDBConnection):
        return f"duckdb:///{connection.path}"
    elif isinstance(connection, PostgreSQLConnection):
        password_part = f":{quote(connection.password, safe='')}" if connection.password else ""
        return (
            f"postgres://{quote(connection.username, safe='')}{password_part}@"
            f"{connection.host}:{connection.port}/{connection.database}"
        )
    else:
        raise ValueError(f"Unknown connection type: {type(connection)}")


def configure_databases(config: OrmConfig) -> None:
    """Connect every configured database and register it by name."""
    from relorm.db import connect, register_database

    for name, connection in config.databases.items():
        register_database(connect(build_connection_string(connection)), name)
        logger.info("Connected database '%s' (%s)", name, connection.type)
