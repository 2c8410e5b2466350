"""
Scope: the working context of one migration or query-building call.

A scope pairs a model value with a search state and the DB handle it came
from. It compiles condition clauses into SQL (`build_condition`), collects
the bound values in order (`add_to_vars`), assembles the WHERE / JOIN /
ORDER / GROUP / HAVING / LIMIT clauses, and runs finished statements through
the executor, recording failures on the DB handle instead of raising them.
"""
from __future__ import annotations

import inspect
import re
import uuid
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from automigrate import migrator
from automigrate.domain.models import Field, ModelStruct, get_model_struct, is_blank
from automigrate.errors import (
    AutomigrateError,
    ExecutionError,
    InvalidQueryConditionError,
)
from automigrate.query.clauses import (
    Clause,
    Equality,
    Expr,
    KeyedMap,
    Membership,
    Nested,
    Raw,
    SQLValuer,
    Template,
)
from automigrate.query.search import Search, Selection
from automigrate.utils.logging import get_logger
from automigrate.utils.naming import to_column_name

if TYPE_CHECKING:  # pragma: no cover
    from automigrate.db import DB
    from automigrate.dialects.abstract import Dialect

log = get_logger(__name__)

# Only match strings like `name`, `users.name`.
COLUMN_RE = re.compile(r"^[a-zA-Z\d_]+(\.[a-zA-Z\d_]+)*$")
IS_NUMBER_RE = re.compile(r"^\s*\d+\s*$")
COMPARISON_RE = re.compile(r"(?i) (=|<>|(>|<)(=?)|LIKE|IS|IN) ")

SKIP_BIND_VAR = "skip_bindvar"
TABLE_OPTIONS = "automigrate:table_options"


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset, range))


def replace_placeholders(sql: str, replacements: Sequence[str]) -> str:
    """Replace `?` left to right; placeholders beyond the replacements stay as they are."""
    out: List[str] = []
    i = 0
    for char in sql:
        if char == "?" and i < len(replacements):
            out.append(replacements[i])
            i += 1
        else:
            out.append(char)
    return "".join(out)


class Scope:
    def __init__(self, db: "DB", value: Any, search: Optional[Search] = None) -> None:
        if isinstance(value, type) and issubclass(value, BaseModel):
            value = value.model_construct()
        self.search = search if search is not None else Search()
        self.value = value
        self.sql = ""
        self.sql_vars: List[Any] = []
        self._db = db
        self._instance_id = ""
        self._fields: Optional[List[Field]] = None

    def __repr__(self) -> str:
        return f"Scope(value={type(self.value).__name__}, table={self.table_name()!r})"

    @property
    def db(self) -> "DB":
        return self._db

    def new_db(self) -> "DB":
        """A DB without search, value or errors, sharing dialect, executor and settings."""
        return self._db.clone(reset=True)

    def new(self, value: Any) -> "Scope":
        """A scope for `value` without search information."""
        return Scope(self.new_db(), value)

    def dialect(self) -> "Dialect":
        return self._db.dialect()

    # Naming

    def table_name(self) -> str:
        if self.search.table_name:
            return self.search.table_name

        method = getattr(self.value, "table_name", None)
        if callable(method) and not isinstance(self.value, type):
            params = [
                p for p in inspect.signature(method).parameters.values()
                if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            ]
            if params:
                return method(self._db)
            return method()

        name = self.get_model_struct().table_name(self._db.singular_table)
        return self._db.table_name_handler(name)

    def quote(self, value: str) -> str:
        if "." in value:
            return ".".join(self.dialect().quote(part) for part in value.split("."))
        return self.dialect().quote(value)

    def quoted_table_name(self) -> str:
        if self.search.table_name:
            if " " in self.search.table_name:
                return self.search.table_name
            return self.quote(self.search.table_name)
        return self.quote(self.table_name())

    def quote_if_possible(self, value: str) -> str:
        if COLUMN_RE.match(value):
            return self.quote(value)
        return value

    # Per-call settings

    def instance_id(self) -> str:
        if not self._instance_id:
            self._instance_id = uuid.uuid4().hex
        return self._instance_id

    def set(self, name: str, value: Any) -> "Scope":
        self._db.instant_set(name, value)
        return self

    def get(self, name: str) -> Tuple[Any, bool]:
        return self._db.get(name)

    def instance_set(self, name: str, value: Any) -> "Scope":
        """Set a flag for this operation only (not for nested operations)."""
        return self.set(name + self.instance_id(), value)

    def instance_get(self, name: str) -> Tuple[Any, bool]:
        return self.get(name + self.instance_id())

    def get_table_options(self) -> str:
        table_options, ok = self.get(TABLE_OPTIONS)
        if not ok or not table_options:
            return ""
        return " " + str(table_options)

    # Errors and execution

    def err(self, error: Optional[BaseException]) -> Optional[BaseException]:
        if error is not None:
            log.warning(str(error), extra={"table": self._safe_table_name(), "error_type": type(error).__name__})
            self._db.add_error(error)
        return error

    def _safe_table_name(self) -> str:
        try:
            return self.table_name()
        except Exception:  # noqa: BLE001 - only used to label a log line
            return ""

    def raw(self, sql: str) -> "Scope":
        self.sql = sql.replace("$$$", "?")
        return self

    def exec(self) -> "Scope":
        if self._db.log_mode:
            log.info(
                self.sql,
                extra={"sql": self.sql, "vars": list(self.sql_vars), "table": self._safe_table_name()},
            )
        try:
            rows_affected = self._db.executor.exec(self.sql, *self.sql_vars)
        except Exception as exc:  # noqa: BLE001 - record the failure, callers inspect db.error
            self.err(ExecutionError(self.sql, exc))
        else:
            self._db.rows_affected = rows_affected
        return self

    def add_to_vars(self, value: Any) -> str:
        """Bind `value` and return its marker; `Expr` values are inlined."""
        _, skip_bind_var = self.instance_get(SKIP_BIND_VAR)

        if isinstance(value, Expr):
            if skip_bind_var:
                for arg in value.args:
                    self.add_to_vars(arg)
                return value.expr
            return replace_placeholders(value.expr, [self.add_to_vars(arg) for arg in value.args])

        if isinstance(value, SQLValuer) and not isinstance(value, BaseModel):
            value = value.sql_value()
        self.sql_vars.append(value)

        if skip_bind_var:
            return "?"
        return self.dialect().bind_var(len(self.sql_vars))

    # Fields and primary keys

    def get_model_struct(self) -> ModelStruct:
        return get_model_struct(self.value)

    def fields(self) -> List[Field]:
        if self._fields is None:
            is_model = isinstance(self.value, BaseModel)
            fields = []
            for struct_field in self.get_model_struct().struct_fields:
                if is_model:
                    value = getattr(self.value, struct_field.name, None)
                    fields.append(Field(struct_field, value, is_blank(value)))
                else:
                    fields.append(Field(struct_field))
            self._fields = fields
        return self._fields

    def field_by_name(self, name: str) -> Optional[Field]:
        db_name = to_column_name(name)
        most_matched = None
        for field in self.fields():
            if field.name == name or field.db_name == name:
                return field
            if field.db_name == db_name:
                most_matched = field
        return most_matched

    def primary_fields(self) -> List[Field]:
        return [field for field in self.fields() if field.is_primary_key]

    def primary_field(self) -> Optional[Field]:
        """The main primary field: the one named `id` when there are several, else the first."""
        primary_fields = self.primary_fields()
        if not primary_fields:
            return None
        if len(primary_fields) > 1:
            for field in primary_fields:
                if field.db_name.lower() == "id":
                    return field
        return primary_fields[0]

    def primary_key(self) -> str:
        field = self.primary_field()
        return field.db_name if field is not None else ""

    def primary_key_zero(self) -> bool:
        field = self.primary_field()
        return field is None or field.is_blank

    def primary_key_value(self) -> Any:
        field = self.primary_field()
        if field is not None:
            return field.value
        return 0

    # Condition compiler

    def primary_condition(self, value: Any) -> str:
        return f"({self.quoted_table_name()}.{self.quote(self.primary_key())} = {value})"

    def build_condition(self, clause: Clause, include: bool) -> str:
        quoted_table_name = self.quoted_table_name()
        quoted_primary_key = self.quote(self.primary_key())
        equal_sql, in_sql = ("=", "IN") if include else ("<>", "NOT IN")

        if isinstance(clause, Equality):
            return f"({quoted_table_name}.{quoted_primary_key} {equal_sql} {clause.value})"

        if isinstance(clause, Membership):
            if not include and not clause.values:
                return ""
            sql = f"({quoted_table_name}.{quoted_primary_key} {in_sql} (?))"
            args: Tuple[Any, ...] = (list(clause.values),)
        elif isinstance(clause, Raw):
            value = clause.sql
            if IS_NUMBER_RE.match(value):
                return f"({quoted_table_name}.{quoted_primary_key} {equal_sql} {self.add_to_vars(value)})"
            if value == "":
                return ""
            if include:
                sql = f"({value})"
            elif COMPARISON_RE.search(value):
                sql = f"NOT ({value})"
            else:
                sql = f"({quoted_table_name}.{self.quote(value)} NOT IN (?))"
            args = clause.args
        elif isinstance(clause, KeyedMap):
            sqls = []
            for key, value in clause.items:
                if value is not None:
                    sqls.append(f"({quoted_table_name}.{self.quote(key)} {equal_sql} {self.add_to_vars(value)})")
                elif include:
                    sqls.append(f"({quoted_table_name}.{self.quote(key)} IS NULL)")
                else:
                    sqls.append(f"({quoted_table_name}.{self.quote(key)} IS NOT NULL)")
            return " AND ".join(sqls)
        elif isinstance(clause, Nested):
            return self._build_nested_condition(clause, equal_sql)
        elif isinstance(clause, Template):
            sql = f"({clause.sql})" if include else f"NOT ({clause.sql})"
            args = clause.args
        else:
            self.err(InvalidQueryConditionError(clause))
            return ""

        bound = len(self.sql_vars)
        try:
            replacements = [self._compile_arg(arg) for arg in args]
        except Exception as exc:  # noqa: BLE001 - a failing value aborts this clause only
            del self.sql_vars[bound:]
            self.err(exc if isinstance(exc, AutomigrateError) else InvalidQueryConditionError(exc))
            return ""
        return replace_placeholders(sql, replacements)

    def _build_nested_condition(self, clause: Nested, equal_sql: str) -> str:
        new_scope = self.new(clause.model)
        fields = new_scope.fields()
        if not fields:
            self.err(InvalidQueryConditionError(clause.model))
            return ""

        scope_quoted_table_name = new_scope.quoted_table_name()
        sqls = []
        for field in fields:
            if field.is_normal and not field.is_ignored and not field.is_blank:
                sqls.append(
                    f"({scope_quoted_table_name}.{self.quote(field.db_name)} "
                    f"{equal_sql} {self.add_to_vars(field.value)})"
                )
        return " AND ".join(sqls)

    def _compile_arg(self, arg: Any) -> str:
        if isinstance(arg, (bytes, bytearray)):
            return self.add_to_vars(bytes(arg))
        if isinstance(arg, SQLValuer) and not isinstance(arg, BaseModel):
            return self.add_to_vars(arg.sql_value())
        if _is_sequence(arg):
            items = list(arg)
            if items and all(_is_sequence(item) for item in items):
                # where("(a, b) IN (?)", [[1, 2], [3, 4]])
                groups = [
                    "(" + ",".join(self.add_to_vars(v) for v in item) + ")"
                    for item in items
                    if len(item) > 0
                ]
                return ",".join(groups)
            if items:
                return ",".join(self.add_to_vars(item) for item in items)
            return self.add_to_vars(Expr("NULL"))
        return self.add_to_vars(arg)

    def build_select_query(self, selection: Selection) -> str:
        query = selection.query
        sql = query if isinstance(query, str) else ", ".join(query)

        replacements = []
        for arg in selection.args:
            if _is_sequence(arg):
                replacements.append(",".join(self.add_to_vars(item) for item in arg))
            else:
                replacements.append(self.add_to_vars(arg))
        return replace_placeholders(sql, replacements)

    # SQL assembly

    def where_sql(self) -> str:
        quoted_table_name = self.quoted_table_name()
        primary_conditions: List[str] = []
        and_conditions: List[str] = []
        or_conditions: List[str] = []

        deleted_at_field = self.field_by_name("deleted_at")
        if not self.search.unscoped and deleted_at_field is not None and deleted_at_field.is_normal:
            primary_conditions.append(f"{quoted_table_name}.{self.quote(deleted_at_field.db_name)} IS NULL")

        if not self.primary_key_zero():
            for field in self.primary_fields():
                primary_conditions.append(
                    f"{quoted_table_name}.{self.quote(field.db_name)} = {self.add_to_vars(field.value)}"
                )

        for clause in self.search.where_conditions:
            sql = self.build_condition(clause, True)
            if sql:
                and_conditions.append(sql)

        for clause in self.search.or_conditions:
            sql = self.build_condition(clause, True)
            if sql:
                or_conditions.append(sql)

        for clause in self.search.not_conditions:
            sql = self.build_condition(clause, False)
            if sql:
                and_conditions.append(sql)

        or_sql = " OR ".join(or_conditions)
        combined_sql = " AND ".join(and_conditions)
        if combined_sql:
            if or_sql:
                combined_sql = combined_sql + " OR " + or_sql
        else:
            combined_sql = or_sql

        if primary_conditions:
            sql = "WHERE " + " AND ".join(primary_conditions)
            if combined_sql:
                sql = sql + " AND (" + combined_sql + ")"
            return sql
        if combined_sql:
            return "WHERE " + combined_sql
        return ""

    def select_sql(self) -> str:
        if self.search.selects is None:
            if self.search.join_conditions:
                return f"{self.quoted_table_name()}.*"
            return "*"
        return self.build_select_query(self.search.selects)

    def order_sql(self) -> str:
        if not self.search.orders or self.search.ignore_order_query:
            return ""

        orders = []
        for order in self.search.orders:
            if isinstance(order, Expr):
                orders.append(self.add_to_vars(order))
            else:
                orders.append(self.quote_if_possible(order))
        return " ORDER BY " + ",".join(orders)

    def limit_and_offset_sql(self) -> str:
        try:
            return self.dialect().limit_and_offset_sql(self.search.limit, self.search.offset)
        except AutomigrateError as exc:
            self.err(exc)
            return ""

    def group_sql(self) -> str:
        if not self.search.group:
            return ""
        return " GROUP BY " + self.search.group

    def having_sql(self) -> str:
        and_conditions = []
        for clause in self.search.having_conditions:
            sql = self.build_condition(clause, True)
            if sql:
                and_conditions.append(sql)

        if not and_conditions:
            return ""
        return " HAVING " + " AND ".join(and_conditions)

    def joins_sql(self) -> str:
        join_conditions = []
        for clause in self.search.join_conditions:
            sql = self.build_condition(clause, True)
            if sql:
                join_conditions.append(sql.removeprefix("(").removesuffix(")"))
        return " ".join(join_conditions) + " "

    def combined_condition_sql(self) -> str:
        join_sql = self.joins_sql()
        where_sql = self.where_sql()
        if self.search.raw:
            where_sql = where_sql.removeprefix("WHERE (").removesuffix(")")
        return (
            join_sql + where_sql + self.group_sql()
            + self.having_sql() + self.order_sql() + self.limit_and_offset_sql()
        )

    def prepare_query_sql(self) -> "Scope":
        if self.search.raw:
            self.raw(self.combined_condition_sql())
        else:
            self.raw(
                f"SELECT {self.select_sql()} FROM {self.quoted_table_name()} {self.combined_condition_sql()}"
            )
        return self

    # Migration

    def auto_migrate(self) -> "Scope":
        return migrator.auto_migrate(self)

    def create_table(self) -> "Scope":
        return migrator.create_table(self)

    def auto_index(self) -> "Scope":
        return migrator.auto_index(self)

    def add_index(self, unique: bool, index_name: str, *columns: str) -> None:
        migrator.add_index(self, unique, index_name, *columns)


__all__ = ["Scope", "replace_placeholders"]
