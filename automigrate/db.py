"""
DB: the user-facing handle.

A `DB` bundles the dialect, the executor, per-handle settings and the
search state being built. Chainable calls (`where`, `table`, `model`,
`set`, ...) return a clone and never mutate the receiver, so a base handle
can be shared and specialised freely:

    db = DB("sqlite3", DBAPIExecutor(sqlite3.connect(":memory:")))
    db = db.auto_migrate(User, Language)
    if db.error:
        ...

Errors never raise out of migration or query building: they accumulate on
the returned handle (`db.error`, `db.get_errors()`).
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from automigrate.config import Settings, get_settings
from automigrate.dialects import AbstractDialect, new_dialect
from automigrate.errors import Errors, ErrRecordNotFound, InvalidQueryConditionError
from automigrate.infrastructure.executor import Executor, connect
from automigrate.query.clauses import Template
from automigrate.query.search import Search
from automigrate.scope import TABLE_OPTIONS, Scope
from automigrate.utils.logging import get_logger

log = get_logger(__name__)


def _identity(name: str) -> str:
    return name


class DB:
    def __init__(
        self,
        dialect: Union[str, AbstractDialect] = "postgres",
        executor: Optional[Executor] = None,
        *,
        singular_table: bool = False,
        table_name_handler: Optional[Callable[[str], str]] = None,
        log_mode: bool = False,
    ) -> None:
        if isinstance(dialect, str):
            dialect = new_dialect(dialect, executor)
        elif executor is not None:
            dialect.set_db(executor)
        self._dialect = dialect
        self._executor = executor
        self._values: Dict[str, Any] = {}
        self._values_lock = threading.Lock()

        self.value: Any = None
        self.error: Optional[BaseException] = None
        self.rows_affected = 0
        self.search = Search()
        self.singular_table = singular_table
        self.table_name_handler: Callable[[str], str] = table_name_handler or _identity
        self.log_mode = log_mode

    @classmethod
    def open(cls, settings: Optional[Settings] = None, executor: Optional[Executor] = None) -> "DB":
        """
        Build a DB from settings.

        Parameters
        ----------
        settings : Settings, optional
            Defaults to the cached process settings.
        executor : Executor, optional
            Defaults to `connect(settings)` for the configured dialect.
        """
        settings = settings or get_settings()
        db = cls(
            settings.dialect,
            executor if executor is not None else connect(settings),
            singular_table=settings.singular_table,
            log_mode=settings.log_sql,
        )
        if settings.table_options:
            db.instant_set(TABLE_OPTIONS, settings.table_options)
        return db

    def __repr__(self) -> str:
        return f"DB(dialect={self._dialect.get_name()!r}, error={self.error!r})"

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            raise RuntimeError("DB has no executor")
        return self._executor

    def dialect(self) -> AbstractDialect:
        return self._dialect

    def clone(self, reset: bool = False) -> "DB":
        """
        Copy this handle.

        Settings and search are copied so the clone can be specialised without
        touching the receiver. With `reset`, the clone starts with no search,
        no value and no errors.
        """
        db = DB.__new__(DB)
        db._dialect = self._dialect
        db._executor = self._executor
        with self._values_lock:
            db._values = dict(self._values)
        db._values_lock = threading.Lock()
        db.singular_table = self.singular_table
        db.table_name_handler = self.table_name_handler
        db.log_mode = self.log_mode
        db.rows_affected = 0
        if reset:
            db.value = None
            db.error = None
            db.search = Search()
        else:
            db.value = self.value
            db.error = self.error
            db.search = self.search.clone()
        return db

    def new_scope(self, value: Any) -> Scope:
        db = self.clone()
        db.value = value
        return Scope(db, value, search=db.search.clone())

    # Settings

    def set(self, name: str, value: Any) -> "DB":
        """Clone with setting `name` (e.g. `automigrate:table_options`)."""
        return self.clone().instant_set(name, value)

    def instant_set(self, name: str, value: Any) -> "DB":
        with self._values_lock:
            self._values[name] = value
        return self

    def get(self, name: str) -> Tuple[Any, bool]:
        with self._values_lock:
            if name in self._values:
                return self._values[name], True
            return None, False

    def with_log_mode(self, enable: bool) -> "DB":
        db = self.clone()
        db.log_mode = enable
        return db

    def with_singular_table(self, enable: bool) -> "DB":
        db = self.clone()
        db.singular_table = enable
        return db

    # Search

    def model(self, value: Any) -> "DB":
        db = self.clone()
        db.value = value
        return db

    def table(self, name: str) -> "DB":
        db = self.clone()
        db.search.table(name)
        db.value = None
        return db

    def unscoped(self) -> "DB":
        db = self.clone()
        db.search.set_unscoped()
        return db

    def _add_condition(self, add: Callable[..., Any], query: Any, args: Tuple[Any, ...]) -> "DB":
        db = self.clone()
        try:
            add(db.search, query, *args)
        except InvalidQueryConditionError as exc:
            log.warning(str(exc), extra={"error_type": type(exc).__name__})
            db.add_error(exc)
        return db

    def where(self, query: Any, *args: Any) -> "DB":
        return self._add_condition(Search.where, query, args)

    def or_(self, query: Any, *args: Any) -> "DB":
        return self._add_condition(Search.or_, query, args)

    def not_(self, query: Any, *args: Any) -> "DB":
        return self._add_condition(Search.not_, query, args)

    def having(self, query: Any, *args: Any) -> "DB":
        return self._add_condition(Search.having, query, args)

    def joins(self, query: str, *args: Any) -> "DB":
        return self._add_condition(Search.joins, query, args)

    def order(self, value: Any, reorder: bool = False) -> "DB":
        db = self.clone()
        db.search.order(value, reorder)
        return db

    def select(self, query: Any, *args: Any) -> "DB":
        db = self.clone()
        db.search.select(query, *args)
        return db

    def limit(self, limit: Any) -> "DB":
        db = self.clone()
        db.search.set_limit(limit)
        return db

    def offset(self, offset: Any) -> "DB":
        db = self.clone()
        db.search.set_offset(offset)
        return db

    def group(self, query: str) -> "DB":
        db = self.clone()
        db.search.set_group(query)
        return db

    def raw(self, raw: bool = True) -> "DB":
        db = self.clone()
        db.search.set_raw(raw)
        return db

    def select_sql(self, value: Any = None) -> Tuple[str, List[Any], Optional[BaseException]]:
        """
        Compile the current search against `value` (or the bound model) without running it.

        Returns
        -------
        tuple
            `(sql, vars, error)`; `error` holds what this handle already carried
            plus anything compilation recorded. The receiver is left untouched.
        """
        scope = self.new_scope(value if value is not None else self.value)
        scope.prepare_query_sql()
        return scope.sql, list(scope.sql_vars), scope.db.error

    # Schema

    def auto_migrate(self, *values: Any) -> "DB":
        """
        Run auto migration for the given models: create missing tables,
        missing columns and missing indexes. Existing columns and data are
        never changed.
        """
        db = self.unscoped()
        for value in values:
            db = db.new_scope(value).auto_migrate().db
        return db

    def has_table(self, value: Any) -> bool:
        """True when the table for `value` (a model or a table name) exists."""
        if isinstance(value, str):
            return self._dialect.has_table(value)
        return self._dialect.has_table(self.new_scope(value).table_name())

    def add_index(self, index_name: str, *columns: str) -> "DB":
        scope = self.unscoped().new_scope(self.value)
        scope.add_index(False, index_name, *columns)
        return scope.db

    def add_unique_index(self, index_name: str, *columns: str) -> "DB":
        scope = self.unscoped().new_scope(self.value)
        scope.add_index(True, index_name, *columns)
        return scope.db

    def remove_index(self, index_name: str) -> "DB":
        scope = self.new_scope(self.value)
        try:
            self._dialect.remove_index(scope.table_name(), index_name)
        except Exception as exc:  # noqa: BLE001 - recorded on the returned handle
            scope.err(exc)
        return scope.db

    def exec(self, sql: str, *values: Any) -> "DB":
        """Run raw SQL; `?` placeholders are bound through the dialect."""
        scope = self.new_scope(None)
        generated_sql = scope.build_condition(Template(sql, tuple(values)), True)
        generated_sql = generated_sql.removeprefix("(").removesuffix(")")
        scope.raw(generated_sql).exec()
        return scope.db

    # Errors

    def add_error(self, err: Optional[BaseException]) -> Optional[BaseException]:
        """
        Record `err` on this handle.

        `ErrRecordNotFound` replaces the current error; anything else joins
        an `Errors` aggregate once more than one error has been recorded.
        """
        if err is None:
            return None
        if err is not ErrRecordNotFound:
            errors = Errors(self.get_errors()).add(err)
            if len(errors) > 1:
                err = errors
        self.error = err
        return err

    def get_errors(self) -> List[BaseException]:
        if isinstance(self.error, Errors):
            return self.error.get_errors()
        if self.error is not None:
            return [self.error]
        return []


__all__ = ["DB"]
