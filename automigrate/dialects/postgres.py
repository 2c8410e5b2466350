"""
PostgreSQL dialect.

Bind markers are `$1, $2, ...`; `PsycopgExecutor` rewrites them for psycopg.
Integer primary keys become `serial` / `bigserial`. Unqualified table names
are looked up in `CURRENT_SCHEMA()`, `schema.table` in the named schema.
"""

from __future__ import annotations

from typing import Tuple

from automigrate.dialects.abstract import AbstractDialect, with_additional_type
from automigrate.domain.models import Kind, StructField

MAX_VARCHAR_SIZE = 65532


class PostgresDialect(AbstractDialect):
    name: str = "postgres"

    def bind_var(self, i: int) -> str:
        return f"${i}"

    def data_type_of(self, field: StructField) -> str:
        kind, sql_type, size, additional_type = self.parse_field(field)

        if not sql_type:
            if kind is Kind.BOOL:
                sql_type = "boolean"
            elif kind is Kind.INT:
                sql_type = "serial" if self.field_can_auto_increment(field) else "integer"
            elif kind is Kind.BIGINT:
                sql_type = "bigserial" if self.field_can_auto_increment(field) else "bigint"
            elif kind is Kind.FLOAT:
                sql_type = "double precision"
            elif kind is Kind.DECIMAL:
                if field.options.size:
                    sql_type = f"numeric({field.options.size},{field.options.precision or 0})"
                else:
                    sql_type = "numeric"
            elif kind is Kind.STRING:
                if 0 < size < MAX_VARCHAR_SIZE:
                    sql_type = f"varchar({size})"
                else:
                    sql_type = "text"
            elif kind is Kind.TIME:
                sql_type = "timestamp with time zone"
            elif kind is Kind.DATE:
                sql_type = "date"
            elif kind is Kind.BYTES:
                sql_type = "bytea"
            elif kind is Kind.JSON:
                sql_type = "jsonb"

        if not sql_type:
            raise self.unsupported(field)
        return with_additional_type(sql_type, additional_type)

    def _schema_and_table(self, table_name: str) -> Tuple[str, str]:
        if "." in table_name:
            schema, table = table_name.split(".", 1)
            return schema, table
        return "", table_name

    def has_index(self, table_name: str, index_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        if schema:
            return self.count(
                "SELECT count(*) FROM pg_indexes WHERE tablename = $1 AND indexname = $2 AND schemaname = $3",
                table,
                index_name,
                schema,
            ) > 0
        return self.count(
            "SELECT count(*) FROM pg_indexes WHERE tablename = $1 AND indexname = $2 "
            "AND schemaname = CURRENT_SCHEMA()",
            table,
            index_name,
        ) > 0

    def has_foreign_key(self, table_name: str, foreign_key_name: str) -> bool:
        return self.count(
            "SELECT count(con.conname) FROM pg_constraint con "
            "WHERE $1::regclass::oid = con.conrelid AND con.conname = $2 AND con.contype='f'",
            table_name,
            foreign_key_name,
        ) > 0

    def has_table(self, table_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        if schema:
            return self.count(
                "SELECT count(*) FROM INFORMATION_SCHEMA.tables WHERE table_name = $1 "
                "AND table_type = 'BASE TABLE' AND table_schema = $2",
                table,
                schema,
            ) > 0
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.tables WHERE table_name = $1 "
            "AND table_type = 'BASE TABLE' AND table_schema = CURRENT_SCHEMA()",
            table,
        ) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        schema, table = self._schema_and_table(table_name)
        if schema:
            return self.count(
                "SELECT count(*) FROM INFORMATION_SCHEMA.columns WHERE table_schema = $1 "
                "AND table_name = $2 AND column_name = $3",
                schema,
                table,
                column_name,
            ) > 0
        return self.count(
            "SELECT count(*) FROM INFORMATION_SCHEMA.columns WHERE table_schema = CURRENT_SCHEMA() "
            "AND table_name = $1 AND column_name = $2",
            table,
            column_name,
        ) > 0

    def remove_index(self, table_name: str, index_name: str) -> None:
        self.db.exec(f"DROP INDEX {self.quote(index_name)}")

    def current_database(self) -> str:
        rows = self.db.query("SELECT CURRENT_DATABASE()")
        return rows[0][0] if rows else ""

    def last_insert_id_returning_suffix(self, table_name: str, column_name: str) -> str:
        return f"RETURNING {self.quote(table_name)}.{self.quote(column_name)}"


__all__ = ["PostgresDialect"]
