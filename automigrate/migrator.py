"""
Additive schema reconciliation.

Given a scope bound to a model, bring the live schema up to the model's
shape without ever dropping or altering what already exists:

1. create the table when it is missing (then its indexes);
2. otherwise add each missing column with `ALTER TABLE ... ADD`;
3. reconcile the join tables of many-to-many fields;
4. create the declared indexes that do not exist yet.

Each step records its failure on the scope's DB handle and the remaining
steps still run, so one bad column never aborts a whole batch.

Notes
-----
The migrator is a set of functions over a `Scope`; `Scope.auto_migrate()`
and friends delegate here.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from automigrate.domain.models import StructField
from automigrate.errors import AutomigrateError, ExecutionError, ModelDefinitionError
from automigrate.utils.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from automigrate.scope import Scope

log = get_logger(__name__)


def _probe(scope: "Scope", check: Callable[..., bool], *args: Any) -> Optional[bool]:
    """Run an introspection check; on failure record it and return None."""
    try:
        return check(*args)
    except Exception as exc:  # noqa: BLE001 - introspection failures abandon the current step only
        scope.err(ExecutionError(f"{check.__name__}{args!r}", exc))
        return None


def _data_type(scope: "Scope", struct_field: StructField) -> Optional[str]:
    try:
        return scope.dialect().data_type_of(struct_field)
    except AutomigrateError as exc:
        scope.err(exc)
        return None


def auto_migrate(scope: "Scope") -> "Scope":
    """
    Reconcile the table of `scope.value` with the live schema.

    Parameters
    ----------
    scope : Scope
        Scope bound to a model instance (or a join table handler).

    Returns
    -------
    Scope
        The same scope; failures are on `scope.db.error`.
    """
    try:
        scope.get_model_struct()
    except AutomigrateError as exc:
        # A broken model definition skips this model only.
        scope.err(exc)
        return scope

    table_name = scope.table_name()
    quoted_table_name = scope.quoted_table_name()
    dialect = scope.dialect()

    log.info(f"[MIGRATE] {table_name}", extra={"table": table_name, "dialect": dialect.get_name()})

    exists = _probe(scope, dialect.has_table, table_name)
    if exists is None:
        return scope

    if not exists:
        return create_table(scope)

    for struct_field in scope.get_model_struct().struct_fields:
        if struct_field.is_normal:
            has_column = _probe(scope, dialect.has_column, table_name, struct_field.db_name)
            if has_column is False:
                sql_tag = _data_type(scope, struct_field)
                if sql_tag is not None:
                    scope.raw(
                        f"ALTER TABLE {quoted_table_name} ADD {scope.quote(struct_field.db_name)} {sql_tag};"
                    ).exec()
        create_join_table(scope, struct_field)
    return auto_index(scope)


def create_table(scope: "Scope") -> "Scope":
    """
    Issue `CREATE TABLE` for the scope's model.

    The table is not created when any column type cannot be resolved; each
    such column is recorded as its own error.
    """
    tags: List[str] = []
    primary_keys: List[str] = []
    primary_key_in_column_type = 0
    failed = False

    for struct_field in scope.get_model_struct().struct_fields:
        if struct_field.is_normal:
            sql_tag = _data_type(scope, struct_field)
            if sql_tag is None:
                failed = True
            else:
                # A column type may carry its own PRIMARY KEY (sqlite autoincrement).
                if "primary key" in sql_tag.lower():
                    primary_key_in_column_type += 1
                tags.append(f"{scope.quote(struct_field.db_name)} {sql_tag}")

            if struct_field.is_primary_key:
                primary_keys.append(scope.quote(struct_field.db_name))
        create_join_table(scope, struct_field)

    table_name = scope.table_name()
    if primary_key_in_column_type > 1:
        scope.err(ModelDefinitionError(f"{table_name}: more than one column declares its own primary key"))
        return scope
    if not tags and not failed:
        scope.err(ModelDefinitionError(f"{table_name}: no columns to create"))
        return scope
    if failed:
        return scope

    primary_key_str = ""
    if primary_keys and not primary_key_in_column_type:
        primary_key_str = f", PRIMARY KEY ({','.join(primary_keys)})"

    scope.raw(
        f"CREATE TABLE {scope.quoted_table_name()} ({','.join(tags)}{primary_key_str}){scope.get_table_options()}"
    ).exec()
    return auto_index(scope)


def create_join_table(scope: "Scope", struct_field: StructField) -> None:
    """Create (or reconcile) the join table of a many-to-many field."""
    relationship = struct_field.relationship
    if relationship is None or relationship.join_table_handler is None:
        return

    handler = relationship.join_table_handler
    join_table = handler.table(scope.db)
    dialect = scope.dialect()

    exists = _probe(scope, dialect.has_table, join_table)
    if exists is None:
        return

    if not exists:
        sql_types: List[str] = []
        primary_keys: List[str] = []
        for key_field in handler.foreign_key_fields():
            sql_tag = _data_type(scope, key_field)
            if sql_tag is None:
                return
            sql_types.append(f"{scope.quote(key_field.db_name)} {sql_tag}")
            primary_keys.append(scope.quote(key_field.db_name))

        log.info(f"[MIGRATE] {join_table} (join table)", extra={"table": join_table})
        # Already logged by the nested call; record only.
        scope.db.add_error(
            scope.new_db()
            .exec(
                f"CREATE TABLE {scope.quote(join_table)} ({','.join(sql_types)}, "
                f"PRIMARY KEY ({','.join(primary_keys)})){scope.get_table_options()}"
            )
            .error
        )
        return

    scope.db.add_error(scope.new_db().table(join_table).auto_migrate(handler).error)


def auto_index(scope: "Scope") -> "Scope":
    """Create every declared index of the scope's model that does not exist yet."""
    dialect = scope.dialect()
    table_name = scope.table_name()
    indexes: Dict[str, List[str]] = {}
    unique_indexes: Dict[str, List[str]] = {}

    for struct_field in scope.get_model_struct().struct_fields:
        if not struct_field.is_normal:
            continue

        for names, kind, target in (
            (struct_field.options.index_names(), "idx", indexes),
            (struct_field.options.unique_index_names(), "uix", unique_indexes),
        ):
            for name in names or ():
                if not name:
                    name = dialect.build_key_name(kind, table_name, struct_field.db_name)
                name, column = dialect.normalize_index_and_column(name, struct_field.db_name)
                target.setdefault(name, []).append(column)

    for name, columns in indexes.items():
        db = scope.new_db().table(table_name).model(scope.value).add_index(name, *columns)
        scope.db.add_error(db.error)

    for name, columns in unique_indexes.items():
        db = scope.new_db().table(table_name).model(scope.value).add_unique_index(name, *columns)
        scope.db.add_error(db.error)

    return scope


def add_index(scope: "Scope", unique: bool, index_name: str, *columns: str) -> None:
    """Create one index unless an index with that name already exists."""
    table_name = scope.table_name()
    exists = _probe(scope, scope.dialect().has_index, table_name, index_name)
    if exists is None or exists:
        return

    quoted_columns = [scope.quote_if_possible(column) for column in columns]
    sql_create = "CREATE UNIQUE INDEX" if unique else "CREATE INDEX"
    log.info(f"[INDEX] {index_name}", extra={"table": table_name, "index": index_name, "unique": unique})
    sql = f"{sql_create} {index_name} ON {scope.quoted_table_name()}({', '.join(quoted_columns)})"
    where_sql = scope.where_sql()
    if where_sql:
        sql = f"{sql} {where_sql}"
    scope.raw(sql).exec()


__all__ = ["add_index", "auto_index", "auto_migrate", "create_join_table", "create_table"]
