"""
SQLite dialect, plus the engine-neutral `common` fallback.

SQLite declares an auto-increment key inside the column type
(`integer primary key autoincrement`), so tables migrated here carry no
separate `PRIMARY KEY (...)` clause when their key is auto-incremented.
"""

from __future__ import annotations

from typing import Any, Tuple

from automigrate.dialects.abstract import AbstractDialect, parse_int, with_additional_type
from automigrate.domain.models import Kind, StructField

MAX_VARCHAR_SIZE = 65532


class SQLiteDialect(AbstractDialect):
    name: str = "sqlite3"

    def data_type_of(self, field: StructField) -> str:
        kind, sql_type, size, additional_type = self.parse_field(field)

        if not sql_type:
            if kind is Kind.BOOL:
                sql_type = "bool"
            elif kind is Kind.INT:
                sql_type = "integer primary key autoincrement" if self.field_can_auto_increment(field) else "integer"
            elif kind is Kind.BIGINT:
                sql_type = "integer primary key autoincrement" if self.field_can_auto_increment(field) else "bigint"
            elif kind is Kind.FLOAT:
                sql_type = "real"
            elif kind is Kind.DECIMAL:
                sql_type = "decimal"
            elif kind is Kind.STRING:
                if 0 < size < MAX_VARCHAR_SIZE:
                    sql_type = f"varchar({size})"
                else:
                    sql_type = "text"
            elif kind is Kind.TIME:
                sql_type = "datetime"
            elif kind is Kind.DATE:
                sql_type = "date"
            elif kind is Kind.BYTES:
                sql_type = "blob"
            elif kind is Kind.JSON:
                sql_type = "text"

        if not sql_type:
            raise self.unsupported(field)
        return with_additional_type(sql_type, additional_type)

    def _schema_and_table(self, table_name: str) -> Tuple[str, str]:
        if "." in table_name:
            schema, table = table_name.split(".", 1)
            return schema, table
        return "main", table_name

    def has_index(self, table_name: str, index_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        return self.count(
            f"SELECT count(*) FROM {self.quote(schema)}.sqlite_master "
            "WHERE type = 'index' AND tbl_name = ? AND name = ?",
            table,
            index_name,
        ) > 0

    def has_table(self, table_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        return self.count(
            f"SELECT count(*) FROM {self.quote(schema)}.sqlite_master WHERE type = 'table' AND name = ?",
            table,
        ) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM pragma_table_info(?, ?) WHERE name = ?",
            table,
            schema,
            column_name,
        ) > 0

    def current_database(self) -> str:
        rows = self.db.query("PRAGMA database_list")
        if rows and len(rows[0]) >= 2:
            return rows[0][1]
        return ""

    def limit_and_offset_sql(self, limit: Any, offset: Any) -> str:
        sql = ""
        parsed_limit = parse_int(limit, "limit") if limit is not None else -1
        parsed_offset = parse_int(offset, "offset") if offset is not None else -1
        if parsed_limit >= 0:
            sql += f" LIMIT {parsed_limit}"
        if parsed_offset >= 0:
            if parsed_limit < 0:
                # SQLite only accepts OFFSET after a LIMIT.
                sql += " LIMIT -1"
            sql += f" OFFSET {parsed_offset}"
        return sql


class CommonDialect(AbstractDialect):
    """
    Engine-neutral fallback used when a dialect name is not registered.

    Types follow ANSI SQL; introspection goes through INFORMATION_SCHEMA.
    """

    name: str = "common"

    def data_type_of(self, field: StructField) -> str:
        kind, sql_type, size, additional_type = self.parse_field(field)

        if not sql_type:
            if kind is Kind.BOOL:
                sql_type = "BOOLEAN"
            elif kind is Kind.INT:
                sql_type = "INTEGER AUTO_INCREMENT" if self.field_can_auto_increment(field) else "INTEGER"
            elif kind is Kind.BIGINT:
                sql_type = "BIGINT AUTO_INCREMENT" if self.field_can_auto_increment(field) else "BIGINT"
            elif kind is Kind.FLOAT:
                sql_type = "FLOAT"
            elif kind is Kind.DECIMAL:
                sql_type = "DECIMAL"
            elif kind in (Kind.STRING, Kind.JSON):
                if kind is Kind.STRING and 0 < size < MAX_VARCHAR_SIZE:
                    sql_type = f"VARCHAR({size})"
                else:
                    sql_type = f"VARCHAR({MAX_VARCHAR_SIZE})"
            elif kind is Kind.TIME:
                sql_type = "TIMESTAMP"
            elif kind is Kind.DATE:
                sql_type = "DATE"
            elif kind is Kind.BYTES:
                if 0 < size < MAX_VARCHAR_SIZE:
                    sql_type = f"BINARY({size})"
                else:
                    sql_type = "BINARY(65532)"

        if not sql_type:
            raise self.unsupported(field)
        return with_additional_type(sql_type, additional_type)

    def has_index(self, table_name: str, index_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.STATISTICS "
            "WHERE table_schema = ? AND table_name = ? AND index_name = ?",
            current_database,
            table_name,
            index_name,
        ) > 0

    def has_table(self, table_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.TABLES WHERE table_schema = ? AND table_name = ?",
            current_database,
            table_name,
        ) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        current_database, table_name = self.current_database_and_table(table_name)
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE table_schema = ? AND table_name = ? AND column_name = ?",
            current_database,
            table_name,
            column_name,
        ) > 0

    def current_database(self) -> str:
        rows = self.db.query("SELECT DATABASE()")
        return rows[0][0] if rows else ""


__all__ = ["CommonDialect", "SQLiteDialect"]
