"""
Microsoft SQL Server dialect.

Bind markers are emitted as the internal `$$$` token, rewritten to `?` when
the statement is finalised (pyodbc uses the qmark paramstyle). Pagination
uses `OFFSET ... ROWS FETCH NEXT ... ROWS ONLY`; integer primary keys become
`IDENTITY(1,1)` columns.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, List, Optional

from automigrate.dialects.abstract import AbstractDialect, parse_int, with_additional_type
from automigrate.domain.models import Kind, StructField

if TYPE_CHECKING:  # pragma: no cover
    from automigrate.scope import Scope

IDENTITY_INSERT_FLAG = "mssql:identity_insert_on"
MAX_BOUNDED_SIZE = 8000


class MSSQLDialect(AbstractDialect):
    name: str = "mssql"

    def bind_var(self, i: int) -> str:
        return "$$$"

    def quote(self, key: str) -> str:
        return f"[{key}]"

    def data_type_of(self, field: StructField) -> str:
        kind, sql_type, size, additional_type = self.parse_field(field)

        if not sql_type:
            if kind is Kind.BOOL:
                sql_type = "bit"
            elif kind is Kind.INT:
                sql_type = "int IDENTITY(1,1)" if self.field_can_auto_increment(field) else "int"
            elif kind is Kind.BIGINT:
                sql_type = "bigint IDENTITY(1,1)" if self.field_can_auto_increment(field) else "bigint"
            elif kind is Kind.FLOAT:
                sql_type = "float"
            elif kind is Kind.DECIMAL:
                sql_type = _decimal_type(field)
            elif kind in (Kind.STRING, Kind.JSON):
                if kind is Kind.STRING and 0 < size < MAX_BOUNDED_SIZE:
                    sql_type = f"nvarchar({size})"
                else:
                    sql_type = "nvarchar(max)"
            elif kind is Kind.TIME:
                sql_type = "datetimeoffset"
            elif kind is Kind.DATE:
                sql_type = "date"
            elif kind is Kind.BYTES:
                if 0 < size < MAX_BOUNDED_SIZE:
                    sql_type = f"varbinary({size})"
                else:
                    sql_type = "varbinary(max)"

        if not sql_type:
            raise self.unsupported(field)
        return with_additional_type(sql_type, additional_type)

    def has_index(self, table_name: str, index_name: str) -> bool:
        return self.count(
            "SELECT count(*) FROM sys.indexes WHERE name=? AND object_id=OBJECT_ID(?)",
            index_name,
            table_name,
        ) > 0

    def remove_index(self, table_name: str, index_name: str) -> None:
        self.db.exec(f"DROP INDEX {index_name} ON {self.quote(table_name)}")

    def has_foreign_key(self, table_name: str, foreign_key_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) "
            "FROM sys.foreign_keys as F inner join sys.tables as T on F.parent_object_id=T.object_id "
            "inner join information_schema.tables as I on I.TABLE_NAME = T.name "
            "WHERE F.name = ? AND T.Name = ? AND I.TABLE_CATALOG = ?;",
            foreign_key_name,
            table_name,
            current_database,
        ) > 0

    def has_table(self, table_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.tables WHERE table_name = ? AND table_catalog = ?",
            table_name,
            current_database,
        ) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM information_schema.columns "
            "WHERE table_catalog = ? AND table_name = ? AND column_name = ?",
            current_database,
            table_name,
            column_name,
        ) > 0

    def modify_column(self, table_name: str, column_name: str, typ: str) -> None:
        self.db.exec(f"ALTER TABLE {table_name} ALTER COLUMN {column_name} {typ}")

    def current_database(self) -> str:
        rows = self.db.query("SELECT DB_NAME() AS [Current Database]")
        return rows[0][0] if rows else ""

    def limit_and_offset_sql(self, limit: Any, offset: Any) -> str:
        sql = ""
        if offset is not None:
            parsed_offset = parse_int(offset, "offset")
            if parsed_offset >= 0:
                sql += f" OFFSET {parsed_offset} ROWS"
        if limit is not None:
            parsed_limit = parse_int(limit, "limit")
            if parsed_limit >= 0:
                if not sql:
                    # FETCH NEXT is only valid after an OFFSET clause.
                    sql += " OFFSET 0 ROWS"
                sql += f" FETCH NEXT {parsed_limit} ROWS ONLY"
        return sql

    def last_insert_id_output_interstitial(self, table_name: str, column_name: str, columns: List[str]) -> str:
        if not columns:
            return ""
        return f"OUTPUT Inserted.{column_name}"

    def last_insert_id_returning_suffix(self, table_name: str, column_name: str) -> str:
        return "; SELECT SCOPE_IDENTITY()"


def _decimal_type(field: StructField) -> str:
    if field.options.size:
        return f"decimal({field.options.size},{field.options.precision or 0})"
    return "decimal"


def set_identity_insert(scope: "Scope") -> None:
    """
    Allow explicit values in an IDENTITY primary key for the scope's table.

    Turned on only when an auto-incrementing primary key of the scope's value
    is non-blank; the scope remembers it so `turn_off_identity_insert` can
    undo it.
    """
    if scope.dialect().get_name() != MSSQLDialect.name:
        return
    dialect = scope.dialect()
    for field in scope.primary_fields():
        can_auto_increment = (
            dialect.field_can_auto_increment(field.struct_field)
            if isinstance(dialect, AbstractDialect)
            else bool(field.options.auto_increment)
        )
        if can_auto_increment and not field.is_blank:
            scope.db.add_error(scope.new_db().exec(f"SET IDENTITY_INSERT {scope.quoted_table_name()} ON").error)
            scope.instance_set(IDENTITY_INSERT_FLAG, True)
            return


def turn_off_identity_insert(scope: "Scope") -> None:
    if scope.dialect().get_name() != MSSQLDialect.name:
        return
    if scope.instance_get(IDENTITY_INSERT_FLAG)[1]:
        scope.db.add_error(scope.new_db().exec(f"SET IDENTITY_INSERT {scope.quoted_table_name()} OFF").error)


class JSON:
    """
    JSON document bound as text (SQL Server has no native JSON column type).

    Implements `sql_value`, so it can be passed anywhere a bound value is.
    """

    __slots__ = ("data",)

    def __init__(self, data: Any = None) -> None:
        self.data = data

    def sql_value(self) -> Optional[str]:
        if self.data is None:
            return None
        return json.dumps(self.data)

    @classmethod
    def scan(cls, value: Any) -> "JSON":
        if not isinstance(value, str):
            raise ValueError(f"Failed to unmarshal JSON value (expected str): {value!r}")
        return cls(json.loads(value))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JSON) and other.data == self.data

    def __repr__(self) -> str:
        return f"JSON({self.data!r})"


__all__ = ["JSON", "MSSQLDialect", "set_identity_insert", "turn_off_identity_insert"]
