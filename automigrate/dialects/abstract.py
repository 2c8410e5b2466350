"""
Dialect interface and shared behaviour.

A dialect isolates everything engine specific: identifier quoting, bind
markers, the SQL type of each column kind, pagination syntax and the catalog
queries that tell the migrator what already exists.

Concrete dialects (mssql, postgres, sqlite, common) subclass
`AbstractDialect`, set `name`, and implement `data_type_of`, the `has_*`
introspection queries and `current_database`. Everything else has a default
that engines override where their syntax differs.
"""

from __future__ import annotations

import abc
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

from automigrate.domain.models import Kind, StructField
from automigrate.errors import InvalidLimitError, UnsupportedTypeError
from automigrate.infrastructure.executor import Executor, scalar
from automigrate.utils.logging import get_logger
from automigrate.utils.naming import build_key_name

log = get_logger(__name__)

DEFAULT_STRING_SIZE = 255


@runtime_checkable
class Dialect(Protocol):
    """
    Contract every database engine implements.

    Attributes
    ----------
    name : str
        Registry key, e.g. "mssql" or "postgres".
    """

    name: str

    def get_name(self) -> str: ...

    def set_db(self, db: Executor) -> None: ...

    def bind_var(self, i: int) -> str: ...

    def quote(self, key: str) -> str: ...

    def data_type_of(self, field: StructField) -> str: ...

    def has_index(self, table_name: str, index_name: str) -> bool: ...

    def has_foreign_key(self, table_name: str, foreign_key_name: str) -> bool: ...

    def remove_index(self, table_name: str, index_name: str) -> None: ...

    def has_table(self, table_name: str) -> bool: ...

    def has_column(self, table_name: str, column_name: str) -> bool: ...

    def modify_column(self, table_name: str, column_name: str, typ: str) -> None: ...

    def limit_and_offset_sql(self, limit: Any, offset: Any) -> str: ...

    def select_from_dummy_table(self) -> str: ...

    def last_insert_id_output_interstitial(self, table_name: str, column_name: str, columns: List[str]) -> str: ...

    def last_insert_id_returning_suffix(self, table_name: str, column_name: str) -> str: ...

    def default_value_str(self) -> str: ...

    def build_key_name(self, kind: str, table_name: str, *fields: str) -> str: ...

    def normalize_index_and_column(self, index_name: str, column_name: str) -> Tuple[str, str]: ...

    def current_database(self) -> str: ...


def parse_int(value: Any, name: str) -> int:
    """Parse a LIMIT / OFFSET value (int or numeric string, base prefixes allowed)."""
    if isinstance(value, bool):
        raise InvalidLimitError(name, value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), 0)
    except ValueError:
        raise InvalidLimitError(name, value) from None


class AbstractDialect(abc.ABC):
    """
    Base class for class-based dialects.

    Holds the executor used for introspection queries; DDL produced from the
    dialect's answers is executed by the caller, not here.
    """

    name: str = ""

    def __init__(self, db: Optional[Executor] = None) -> None:
        self._db = db

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    def get_name(self) -> str:
        return self.name

    def set_db(self, db: Executor) -> None:
        self._db = db

    @property
    def db(self) -> Executor:
        if self._db is None:
            raise RuntimeError(f"dialect '{self.name}' has no executor; call set_db() first")
        return self._db

    def bind_var(self, i: int) -> str:
        return "?"

    def quote(self, key: str) -> str:
        return f'"{key}"'

    @abc.abstractmethod
    def data_type_of(self, field: StructField) -> str:  # pragma: no cover - interface only
        """Column type clause for `field`, including NOT NULL / UNIQUE / DEFAULT."""
        raise NotImplementedError

    @abc.abstractmethod
    def has_table(self, table_name: str) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def has_column(self, table_name: str, column_name: str) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def has_index(self, table_name: str, index_name: str) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def current_database(self) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def has_foreign_key(self, table_name: str, foreign_key_name: str) -> bool:
        return False

    def remove_index(self, table_name: str, index_name: str) -> None:
        self.db.exec(f"DROP INDEX {index_name}")

    def modify_column(self, table_name: str, column_name: str, typ: str) -> None:
        self.db.exec(f"ALTER TABLE {table_name} ALTER COLUMN {column_name} TYPE {typ}")

    def limit_and_offset_sql(self, limit: Any, offset: Any) -> str:
        sql = ""
        if limit is not None:
            parsed_limit = parse_int(limit, "limit")
            if parsed_limit >= 0:
                sql += f" LIMIT {parsed_limit}"
        if offset is not None:
            parsed_offset = parse_int(offset, "offset")
            if parsed_offset >= 0:
                sql += f" OFFSET {parsed_offset}"
        return sql

    def select_from_dummy_table(self) -> str:
        return ""

    def last_insert_id_output_interstitial(self, table_name: str, column_name: str, columns: List[str]) -> str:
        return ""

    def last_insert_id_returning_suffix(self, table_name: str, column_name: str) -> str:
        return ""

    def default_value_str(self) -> str:
        return "DEFAULT VALUES"

    def build_key_name(self, kind: str, table_name: str, *fields: str) -> str:
        return build_key_name(kind, table_name, *fields)

    def normalize_index_and_column(self, index_name: str, column_name: str) -> Tuple[str, str]:
        return index_name, column_name

    # Helpers shared by the concrete dialects.

    def field_can_auto_increment(self, field: StructField) -> bool:
        """Explicit auto_increment wins; otherwise primary keys auto-increment."""
        if field.options.auto_increment is not None:
            return field.options.auto_increment
        return field.is_primary_key

    def parse_field(self, field: StructField) -> Tuple[Optional[Kind], str, int, str]:
        """
        Split a field into (kind, explicit sql type, size, additional type).

        Size defaults to 255 when the field declares none.
        """
        options = field.options
        size = options.size if options.size is not None else DEFAULT_STRING_SIZE
        return field.kind, (options.type or "").strip(), size, options.additional_type()

    def unsupported(self, field: StructField) -> UnsupportedTypeError:
        kind = field.kind.value if field.kind is not None else getattr(field.python_type, "__name__", repr(field.python_type))
        return UnsupportedTypeError(field.name, kind, self.name)

    def count(self, sql: str, *values: Any) -> int:
        log.debug("introspection query", extra={"dialect": self.name, "sql": sql})
        value = scalar(self.db, sql, *values)
        return int(value or 0)

    def current_database_and_table(self, table_name: str) -> Tuple[str, str]:
        """Split `catalog.table`; unqualified names use the current database."""
        if "." in table_name:
            qualifier, table = table_name.split(".", 1)
            return qualifier, table
        return self.current_database(), table_name


def with_additional_type(sql_type: str, additional_type: str) -> str:
    if not additional_type.strip():
        return sql_type
    return f"{sql_type} {additional_type}"


__all__ = [
    "AbstractDialect",
    "DEFAULT_STRING_SIZE",
    "Dialect",
    "parse_int",
    "with_additional_type",
]
