"""Pytest configuration and fixtures."""

import pytest

from relorm.db import close_databases, register_database
from relorm.db.duckdb import DuckDBAdapter

SCHEMA = [
    "CREATE SEQUENCE user_id_seq START 1",
    'CREATE TABLE "user" (id INTEGER DEFAULT nextval(\'user_id_seq\'), name VARCHAR, age INTEGER, avatar VARCHAR)',
    "CREATE SEQUENCE address_id_seq START 1",
    "CREATE TABLE address (id INTEGER DEFAULT nextval('address_id_seq'), user_id INTEGER, addr VARCHAR, tel VARCHAR)",
    "CREATE SEQUENCE post_id_seq START 1",
    "CREATE TABLE post (id INTEGER DEFAULT nextval('post_id_seq'), title VARCHAR)",
    "CREATE SEQUENCE comment_id_seq START 1",
    'CREATE TABLE "comment" (id INTEGER DEFAULT nextval(\'comment_id_seq\'), post_id INTEGER, '
    "parent_id INTEGER, body VARCHAR)",
]


@pytest.fixture
def db():
    """Fresh in-memory DuckDB with the test schema, registered as the default database."""
    adapter = DuckDBAdapter(":memory:")
    for statement in SCHEMA:
        adapter.execute(statement)
    register_database(adapter)

    yield adapter

    close_databases()


@pytest.fixture
def statements(db, monkeypatch):
    """SQL text of every statement executed through the default adapter from now on."""
    executed = []
    original = db.execute

    def execute(sql, params=None):
        executed.append(sql)
        return original(sql, params)

    monkeypatch.setattr(db, "execute", execute)
    return executed
