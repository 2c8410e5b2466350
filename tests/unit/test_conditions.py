from __future__ import annotations

from typing import Annotated, List

import pytest
from pydantic import BaseModel

from automigrate.db import DB
from automigrate.domain.models import Column, Model
from automigrate.errors import Errors, InvalidLimitError, InvalidQueryConditionError
from automigrate.query.clauses import (
    Equality,
    KeyedMap,
    Membership,
    Nested,
    Raw,
    Template,
    expr,
    to_clause,
)
from automigrate.scope import replace_placeholders

QUOTED_ID = '"users"."id"'


class User(Model):
    name: str = ""
    age: int = 0


class Tag(BaseModel):
    label: str = ""


class Point:
    def __init__(self, x: int, y: int) -> None:
        self.x = x
        self.y = y

    def sql_value(self) -> str:
        return f"({self.x},{self.y})"


@pytest.fixture()
def scope():
    return DB("postgres").new_scope(User())


class TestToClause:
    def test_int_is_primary_key_equality(self) -> None:
        assert to_clause(5) == Equality(5)

    def test_sequences_become_membership(self) -> None:
        assert to_clause([1, 2]) == Membership((1, 2))
        assert to_clause(()) == Membership(())

    def test_string_keeps_its_args(self) -> None:
        assert to_clause("name = ?", ("x",)) == Raw("name = ?", ("x",))

    def test_mapping_keeps_order(self) -> None:
        assert to_clause({"b": 1, "a": None}) == KeyedMap((("b", 1), ("a", None)))

    def test_expr_becomes_template(self) -> None:
        assert to_clause(expr("age > ?", 3)) == Template("age > ?", (3,))

    def test_model_instance_becomes_nested(self) -> None:
        tag = Tag(label="x")
        assert to_clause(tag) == Nested(tag)

    def test_valuer_is_resolved_first(self) -> None:
        assert to_clause(Point(1, 2)) == Raw("(1,2)", ())

    @pytest.mark.parametrize("query", [True, 1.5, object(), {1: "a"}])
    def test_unsupported_shapes_raise(self, query) -> None:
        with pytest.raises(InvalidQueryConditionError):
            to_clause(query)


class TestBuildCondition:
    def test_integer_equality(self, scope) -> None:
        assert scope.build_condition(Equality(5), True) == f"({QUOTED_ID} = 5)"
        assert scope.build_condition(Equality(5), False) == f"({QUOTED_ID} <> 5)"
        assert scope.sql_vars == []

    def test_numeric_string_binds_the_id(self, scope) -> None:
        assert scope.build_condition(Raw("10"), True) == f"({QUOTED_ID} = $1)"
        assert scope.sql_vars == ["10"]

    def test_membership_binds_each_value(self, scope) -> None:
        sql = scope.build_condition(Membership((1, 2, 3)), True)
        assert sql == f"({QUOTED_ID} IN ($1,$2,$3))"
        assert scope.sql_vars == [1, 2, 3]

    def test_empty_membership_included_never_matches(self, scope) -> None:
        sql = scope.build_condition(Membership(()), True)
        assert sql == f"({QUOTED_ID} IN (NULL))"
        assert scope.sql_vars == []

    def test_empty_membership_negated_is_dropped(self, scope) -> None:
        assert scope.build_condition(Membership(()), False) == ""
        assert scope.sql_vars == []

    def test_keyed_map_included(self, scope) -> None:
        clause = to_clause({"name": "x", "deleted": None})
        sql = scope.build_condition(clause, True)
        assert sql == '("users"."name" = $1) AND ("users"."deleted" IS NULL)'
        assert scope.sql_vars == ["x"]

    def test_keyed_map_negated(self, scope) -> None:
        clause = to_clause({"name": "x", "deleted": None})
        sql = scope.build_condition(clause, False)
        assert sql == '("users"."name" <> $1) AND ("users"."deleted" IS NOT NULL)'
        assert scope.sql_vars == ["x"]

    def test_raw_predicate_with_args(self, scope) -> None:
        sql = scope.build_condition(Raw("name = ? AND age > ?", ("jinzhu", 20)), True)
        assert sql == "(name = $1 AND age > $2)"
        assert scope.sql_vars == ["jinzhu", 20]

    def test_negated_comparison_is_wrapped(self, scope) -> None:
        assert scope.build_condition(Raw("age > ?", (20,)), False) == "NOT (age > $1)"

    def test_negated_column_name_is_not_in(self, scope) -> None:
        sql = scope.build_condition(Raw("name", (["a", "b"],)), False)
        assert sql == '("users"."name" NOT IN ($1,$2))'
        assert scope.sql_vars == ["a", "b"]

    def test_empty_string_yields_nothing(self, scope) -> None:
        assert scope.build_condition(Raw(""), True) == ""

    def test_nested_sequences_become_tuples(self, scope) -> None:
        sql = scope.build_condition(Raw("(name, age) IN (?)", ([["a", 1], ["b", 2]],)), True)
        assert sql == "((name, age) IN (($1,$2),($3,$4)))"
        assert scope.sql_vars == ["a", 1, "b", 2]

    def test_expr_argument_is_inlined(self, scope) -> None:
        sql = scope.build_condition(Raw("age = ?", (expr("age + ?", 1),)), True)
        assert sql == "(age = age + $1)"
        assert scope.sql_vars == [1]

    def test_valuer_argument_is_resolved(self, scope) -> None:
        scope.build_condition(Raw("origin = ?", (Point(1, 2),)), True)
        assert scope.sql_vars == ["(1,2)"]

    def test_template_is_never_reinterpreted(self, scope) -> None:
        assert scope.build_condition(Template("name", ()), False) == "NOT (name)"

    def test_nested_model_uses_non_blank_fields(self, scope) -> None:
        sql = scope.build_condition(Nested(User(name="x", age=3)), True)
        assert sql == '("users"."name" = $1) AND ("users"."age" = $2)'
        assert scope.sql_vars == ["x", 3]

    def test_failing_argument_aborts_only_that_clause(self, scope) -> None:
        class Broken:
            def sql_value(self):
                raise ValueError("cannot encode")

        assert scope.build_condition(Raw("a = ? AND b = ?", (1, Broken())), True) == ""
        assert scope.sql_vars == []
        assert scope.db.error is not None
        assert scope.build_condition(Equality(1), True) == f"({QUOTED_ID} = 1)"


class TestSelectSQL:
    def test_soft_delete_and_where(self) -> None:
        sql, values, _ = DB("postgres").where("name = ?", "x").select_sql(User())
        assert sql.startswith('SELECT * FROM "users"')
        assert 'WHERE "users"."deleted_at" IS NULL AND ((name = $1))' in sql
        assert values == ["x"]

    def test_unscoped_drops_soft_delete(self) -> None:
        sql, _, _ = DB("postgres").unscoped().where(5).select_sql(User())
        assert "deleted_at" not in sql
        assert sql.endswith(f"WHERE ({QUOTED_ID} = 5)")

    def test_or_conditions_join_the_and_group(self) -> None:
        sql, values, _ = DB("postgres").unscoped().where("age > ?", 1).or_("name = ?", "x").select_sql(User())
        assert sql.endswith("WHERE (age > $1) OR (name = $2)")
        assert values == [1, "x"]

    def test_primary_key_condition_when_value_has_id(self) -> None:
        sql, values, _ = DB("postgres").unscoped().select_sql(User(id=7))
        assert sql.endswith(f"WHERE {QUOTED_ID} = $1")
        assert values == [7]

    def test_order_group_having_limit_offset(self) -> None:
        db = (
            DB("postgres")
            .unscoped()
            .select(["name", "count(*)"])
            .group("name")
            .having("count(*) > ?", 1)
            .order("name")
            .order("age desc")
            .limit(10)
            .offset("5")
        )
        sql, values, _ = db.select_sql(User())
        assert sql.startswith('SELECT name, count(*) FROM "users"')
        assert sql.endswith(' GROUP BY name HAVING (count(*) > $1) ORDER BY "name",age desc LIMIT 10 OFFSET 5')
        assert values == [1]

    def test_joins_select_table_columns(self) -> None:
        db = DB("postgres").unscoped().joins("JOIN emails ON emails.user_id = users.id AND emails.email = ?", "a@b")
        sql, values, _ = db.select_sql(User())
        assert sql.startswith('SELECT "users".* FROM "users" JOIN emails ON emails.user_id = users.id')
        assert values == ["a@b"]

    def test_invalid_limit_is_recorded(self) -> None:
        db = DB("postgres").limit("ten")
        sql, _, error = db.select_sql(User())
        assert "LIMIT" not in sql
        assert isinstance(error, InvalidLimitError)

    def test_compiling_leaves_the_handle_untouched(self) -> None:
        db = DB("postgres").limit("ten")
        db.select_sql(User())
        assert db.error is None

    def test_compile_error_keeps_earlier_errors(self) -> None:
        db = DB("postgres").where(object()).limit("ten")
        _, _, error = db.select_sql(User())
        assert isinstance(error, Errors)
        assert [type(e) for e in error] == [InvalidQueryConditionError, InvalidLimitError]
        assert isinstance(db.error, InvalidQueryConditionError)

    def test_invalid_condition_is_recorded(self) -> None:
        db = DB("postgres").where(object())
        assert isinstance(db.error, InvalidQueryConditionError)

    def test_mssql_markers_are_rewritten(self) -> None:
        sql, values, _ = DB("mssql").unscoped().where("name = ?", "x").limit(5).select_sql(User())
        assert "$$$" not in sql
        assert sql.startswith("SELECT * FROM [users]")
        assert sql.endswith("WHERE (name = ?) OFFSET 0 ROWS FETCH NEXT 5 ROWS ONLY")
        assert values == ["x"]

    def test_table_override_and_alias(self) -> None:
        sql, _, _ = DB("postgres").table("people p").select_sql()
        assert sql.startswith("SELECT * FROM people p")


class TestSearchClone:
    def test_mutating_a_clone_leaves_the_original(self) -> None:
        base = DB("postgres").where("age > ?", 1)
        derived = base.where("name = ?", "x").order("name").limit(3)

        assert len(base.search.where_conditions) == 1
        assert base.search.orders == []
        assert base.search.limit == -1
        assert len(derived.search.where_conditions) == 2

    def test_search_clone_copies_lists(self) -> None:
        search = DB("postgres").where("a = ?", 1).search
        clone = search.clone()
        clone.where("b = ?", 2)
        clone.order("a", reorder=True)
        assert len(search.where_conditions) == 1
        assert search.orders == []


def test_replace_placeholders_keeps_extra_markers() -> None:
    assert replace_placeholders("a = ? AND b = ?", ["$1"]) == "a = $1 AND b = ?"


class Owner(BaseModel):
    code: Annotated[str, Column(primary_key=True)] = ""
    other: Annotated[int, Column(primary_key=True)] = 0
    items: List[Tag] = []


class Keyless(BaseModel):
    name: str = ""


class TestPrimaryKeys:
    def test_model_without_primary_key(self) -> None:
        scope = DB("postgres").new_scope(Keyless(name="x"))
        assert scope.primary_key_zero()
        assert scope.primary_key() == ""
        assert scope.primary_field() is None

    def test_first_primary_key_wins_without_id(self) -> None:
        scope = DB("postgres").new_scope(Owner(code="a"))
        assert scope.primary_key() == "code"
        assert not scope.primary_key_zero()
        assert scope.primary_key_value() == "a"

    def test_id_preferred_among_several(self) -> None:
        class Composite(BaseModel):
            tenant: Annotated[int, Column(primary_key=True)] = 0
            id: Annotated[int, Column(primary_key=True)] = 0

        scope = DB("postgres").new_scope(Composite(tenant=1))
        assert scope.primary_key() == "id"
        assert scope.primary_key_zero()
