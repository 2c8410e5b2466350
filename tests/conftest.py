"""
Pytest configuration for automigrate.

Provides fixtures for:
- an in-memory fake executor that answers the postgres dialect's catalog
  queries from the DDL it has been given
- DB handles bound to that fake, or to an in-memory sqlite3 database
- Settings override for integration tests
"""

from __future__ import annotations

import os
import re
import sqlite3
import uuid
from typing import Any, Dict, Generator, List, Set, Tuple

import psycopg
import pytest

from automigrate.config import Settings, build_dsn
from automigrate.db import DB
from automigrate.infrastructure.executor import DBAPIExecutor, PsycopgExecutor

_CREATE_TABLE_RE = re.compile(r'^CREATE TABLE "(?P<table>[^"]+)" \((?P<body>.*)\)', re.DOTALL)
_COLUMN_RE = re.compile(r'(?:^|,)"(?P<column>[^"]+)" ')
_ADD_COLUMN_RE = re.compile(r'^ALTER TABLE "(?P<table>[^"]+)" ADD "(?P<column>[^"]+)"')
_CREATE_INDEX_RE = re.compile(r'^CREATE (?:UNIQUE )?INDEX (?P<index>\S+) ON "(?P<table>[^"]+)"')


class FakeSchemaExecutor:
    """
    Executor double for the postgres dialect.

    Keeps tables, columns and indexes in memory, updates them from the DDL it
    executes, and answers `has_table` / `has_column` / `has_index` queries.
    Every executed statement is recorded in `statements`.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, List[str]] = {}
        self.indexes: Dict[str, Set[str]] = {}
        self.statements: List[Tuple[str, Tuple[Any, ...]]] = []
        self.queries: List[Tuple[str, Tuple[Any, ...]]] = []

    def add_table(self, table: str, *columns: str) -> None:
        self.tables[table] = list(columns)
        self.indexes.setdefault(table, set())

    def exec(self, sql: str, *values: Any) -> int:
        self.statements.append((sql, values))
        match = _CREATE_TABLE_RE.match(sql)
        if match:
            self.add_table(match["table"], *_COLUMN_RE.findall(match["body"]))
            return 0
        match = _ADD_COLUMN_RE.match(sql)
        if match:
            self.tables[match["table"]].append(match["column"])
            return 0
        match = _CREATE_INDEX_RE.match(sql)
        if match:
            self.indexes.setdefault(match["table"], set()).add(match["index"])
        return 0

    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:
        self.queries.append((sql, values))
        if "pg_indexes" in sql:
            table, index = values[0], values[1]
            return [(int(index in self.indexes.get(table, set())),)]
        if "INFORMATION_SCHEMA.columns" in sql:
            table, column = values[-2], values[-1]
            return [(int(column in self.tables.get(table, [])),)]
        if "INFORMATION_SCHEMA.tables" in sql:
            return [(int(values[0] in self.tables),)]
        return []

    @property
    def ddl(self) -> List[str]:
        return [sql for sql, _ in self.statements]


@pytest.fixture()
def fake_executor() -> FakeSchemaExecutor:
    return FakeSchemaExecutor()


@pytest.fixture()
def pg_db(fake_executor: FakeSchemaExecutor) -> DB:
    """Postgres-dialect DB over the in-memory fake schema."""
    return DB("postgres", fake_executor)


@pytest.fixture()
def sqlite_db() -> Generator[DB, None, None]:
    """sqlite3-dialect DB over a fresh in-memory database."""
    conn = sqlite3.connect(":memory:")
    try:
        yield DB("sqlite3", DBAPIExecutor(conn))
    finally:
        conn.close()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        dialect="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "automigrate_test"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture()
def pg_live_db(test_dsn: str, db_connection_available: bool) -> Generator[DB, None, None]:
    """
    Postgres DB bound to a throwaway schema.

    Skips tests if database is not available; the schema is dropped afterwards.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    schema = f"automigrate_{uuid.uuid4().hex[:12]}"
    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        conn.execute(f'CREATE SCHEMA "{schema}"')
        conn.execute(f'SET search_path TO "{schema}"')
        yield DB("postgres", PsycopgExecutor(conn))
    finally:
        conn.execute(f'DROP SCHEMA IF EXISTS "{schema}" CASCADE')
        conn.close()
