"""
Execution collaborators for automigrate.

The migrator and the dialects never talk to a driver directly; they hand SQL
text plus positional values to an `Executor`:

- `exec(sql, *values) -> int` runs a statement and returns rows affected;
- `query(sql, *values) -> list[tuple]` runs a read and returns the rows.

Concrete adapters:

- `PsycopgExecutor` for PostgreSQL through psycopg 3 (rewrites `$n` and `?`
  bind markers into psycopg's `%s` paramstyle);
- `DBAPIExecutor` for any PEP 249 connection using the qmark style
  (`sqlite3`, `pyodbc`, ...);
- `RecordingExecutor`, which forwards everything and logs the writes;
- `DryRunExecutor`, which forwards reads and records writes instead of
  running them.

Connection acquisition for PostgreSQL retries transient failures with
tenacity.
"""

from __future__ import annotations

import abc
import re
import sqlite3
from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import psycopg
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from automigrate.config import Settings, build_dsn, get_settings
from automigrate.utils.logging import get_logger

log = get_logger(__name__)

# Quoted literals are copied through untouched; markers and '%' outside them are rewritten.
_PSYCOPG_TOKEN_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\$(\d+)|\?|%")


@runtime_checkable
class Executor(Protocol):
    """
    Contract of the execution collaborator.

    Implementations own the connection and transaction handling; automigrate
    only ever calls these two methods.
    """

    def exec(self, sql: str, *values: Any) -> int:
        """Run a statement and return the number of rows affected."""
        ...

    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:
        """Run a read-only statement and return all rows."""
        ...


class AbstractExecutor(abc.ABC):
    """
    Optional ABC helper for executors.

    Subclasses implement `exec` and `query`; `scalar` is derived.
    """

    @abc.abstractmethod
    def exec(self, sql: str, *values: Any) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:  # pragma: no cover - interface only
        raise NotImplementedError

    def scalar(self, sql: str, *values: Any) -> Any:
        """Return the first column of the first row, or None."""
        return scalar(self, sql, *values)


def scalar(executor: Executor, sql: str, *values: Any) -> Any:
    """Return the first column of the first row produced by `sql`, or None."""
    rows = executor.query(sql, *values)
    if not rows:
        return None
    return rows[0][0]


def to_pyformat(sql: str, values: Sequence[Any]) -> Tuple[str, Tuple[Any, ...]]:
    """
    Rewrite `$n` / `?` bind markers into psycopg `%s` placeholders.

    `$n` markers may appear out of order or repeat; the returned parameter
    tuple follows the order of the rewritten placeholders. Literal `%` signs
    are doubled so psycopg does not read them as placeholders.
    """
    params: List[Any] = []
    sequential = 0

    def _replace(match: re.Match) -> str:
        nonlocal sequential
        token = match.group(0)
        if match.group(1) is not None:
            params.append(values[int(match.group(1)) - 1])
            return "%s"
        if token == "?":
            params.append(values[sequential])
            sequential += 1
            return "%s"
        if token == "%":
            return "%%"
        return token

    return _PSYCOPG_TOKEN_RE.sub(_replace, sql), tuple(params)


class PsycopgExecutor(AbstractExecutor):
    """
    Executor backed by a psycopg 3 connection.

    When the connection is not in autocommit mode every successful `exec` is
    committed and every failure rolled back, so one failed DDL statement does
    not leave the session in an aborted transaction for the next one.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    @classmethod
    def connect(cls, dsn: Optional[str] = None) -> "PsycopgExecutor":
        return cls(get_sync_connection(dsn))

    @property
    def connection(self) -> psycopg.Connection:
        return self._conn

    def exec(self, sql: str, *values: Any) -> int:
        statement, params = to_pyformat(sql, values)
        try:
            with self._conn.cursor() as cur:
                cur.execute(statement, params)
                rowcount = cur.rowcount
        except Exception:
            if not self._conn.autocommit:
                self._conn.rollback()
            raise
        if not self._conn.autocommit:
            self._conn.commit()
        return rowcount

    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:
        statement, params = to_pyformat(sql, values)
        try:
            with self._conn.cursor() as cur:
                cur.execute(statement, params)
                return list(cur.fetchall())
        except Exception:
            if not self._conn.autocommit:
                self._conn.rollback()
            raise

    def close(self) -> None:
        self._conn.close()


class DBAPIExecutor(AbstractExecutor):
    """
    Executor for a PEP 249 connection whose paramstyle is `qmark`.

    Works with `sqlite3` and `pyodbc` (SQL Server) connections.
    """

    def __init__(self, conn: Any, commit: bool = True) -> None:
        self._conn = conn
        self._commit = commit

    @property
    def connection(self) -> Any:
        return self._conn

    def exec(self, sql: str, *values: Any) -> int:
        cur = self._conn.cursor()
        try:
            cur.execute(sql, tuple(values))
            rowcount = cur.rowcount
        except Exception:
            if self._commit:
                self._conn.rollback()
            raise
        finally:
            cur.close()
        if self._commit:
            self._conn.commit()
        return rowcount

    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:
        cur = self._conn.cursor()
        try:
            cur.execute(sql, tuple(values))
            return [tuple(row) for row in cur.fetchall()]
        finally:
            cur.close()

    def close(self) -> None:
        self._conn.close()


class RecordingExecutor(AbstractExecutor):
    """
    Forwards everything to `inner` and keeps a log of the writes.

    Only statements that ran successfully are recorded.
    """

    def __init__(self, inner: Optional[Executor] = None) -> None:
        self._inner = inner
        self.statements: List[Tuple[str, Tuple[Any, ...]]] = []

    def exec(self, sql: str, *values: Any) -> int:
        if self._inner is None:
            raise RuntimeError("RecordingExecutor has no inner executor")
        rowcount = self._inner.exec(sql, *values)
        self.statements.append((sql, tuple(values)))
        return rowcount

    def query(self, sql: str, *values: Any) -> List[Tuple[Any, ...]]:
        if self._inner is None:
            return []
        return self._inner.query(sql, *values)


class DryRunExecutor(RecordingExecutor):
    """
    Records statements instead of running them.

    Reads are forwarded to `inner` so introspection still sees the live schema;
    without an inner executor every read returns no rows (an empty database).
    """

    def exec(self, sql: str, *values: Any) -> int:
        self.statements.append((sql, tuple(values)))
        return 0


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> psycopg.Connection:
    """
    Acquire a dedicated PostgreSQL connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection
    errors. The connection is opened in autocommit mode: every DDL statement
    stands on its own.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn(), autocommit=True)


def connect(settings: Optional[Settings] = None) -> AbstractExecutor:
    """
    Open an executor for the dialect named in settings.

    `postgres` connects through psycopg, `sqlite` / `common` open the file
    named by DB_NAME (`:memory:` allowed). SQL Server connections come from
    the caller's own driver: wrap a pyodbc connection in `DBAPIExecutor`.
    """
    settings = settings or get_settings()
    if settings.dialect == "postgres":
        return PsycopgExecutor.connect(build_dsn(settings))
    if settings.dialect in ("sqlite", "sqlite3", "common"):
        return DBAPIExecutor(sqlite3.connect(settings.db_name))
    raise ValueError(
        f"No built-in connection factory for dialect '{settings.dialect}'. "
        "Wrap a DB-API connection in DBAPIExecutor instead."
    )


__all__ = [
    "AbstractExecutor",
    "DBAPIExecutor",
    "DryRunExecutor",
    "Executor",
    "PsycopgExecutor",
    "RecordingExecutor",
    "connect",
    "get_sync_connection",
    "scalar",
    "to_pyformat",
]
