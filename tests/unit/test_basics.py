import sqlite3
from typing import Annotated, List

import pytest
from pydantic import BaseModel

from automigrate import config
from automigrate.db import DB
from automigrate.domain.join_table import JoinTableHandler
from automigrate.domain.models import Column, ModelStruct, get_model_struct, is_blank
from automigrate.errors import (
    ErrRecordNotFound,
    Errors,
    ExecutionError,
    ModelDefinitionError,
    UnsupportedTypeError,
)
from automigrate.infrastructure.executor import (
    DBAPIExecutor,
    DryRunExecutor,
    RecordingExecutor,
    to_pyformat,
)
from automigrate.utils.naming import build_key_name, pluralize, to_column_name


def test_get_settings_defaults():
    settings = config.Settings()
    assert settings.dialect == "postgres"
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.log_sql is True
    assert settings.table_options is None


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("AUTOMIGRATE_DIALECT", "sqlite3")
    monkeypatch.setenv("DB_NAME", ":memory:")
    monkeypatch.setenv("AUTOMIGRATE_SINGULAR_TABLE", "true")
    settings = config.Settings()
    assert settings.dialect == "sqlite3"
    assert settings.db_name == ":memory:"
    assert settings.singular_table is True


def test_build_dsn_prefers_explicit_dsn():
    settings = config.Settings(db_dsn="postgresql://u:p@h:1/d")
    assert config.build_dsn(settings) == "postgresql://u:p@h:1/d"
    settings = config.Settings(db_user="u", db_password="p", db_host="h", db_port=1, db_name="d")
    assert config.build_dsn(settings) == "postgresql://u:p@h:1/d"


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("UserID", "user_id"),
        ("HTTPClient", "http_client"),
        ("createdAt", "created_at"),
        ("deleted_at", "deleted_at"),
        ("APIKeyURL", "api_key_url"),
    ],
)
def test_to_column_name(name, expected):
    assert to_column_name(name) == expected


@pytest.mark.parametrize(
    ("word", "expected"),
    [
        ("user", "users"),
        ("person", "people"),
        ("category", "categories"),
        ("address", "addresses"),
        ("user_language", "user_languages"),
        ("equipment", "equipment"),
        ("status", "statuses"),
    ],
)
def test_pluralize(word, expected):
    assert pluralize(word) == expected


def test_build_key_name():
    assert build_key_name("uix", "users", "email") == "uix_users_email"
    assert build_key_name("idx", "users", "first name") == "idx_users_first_name"


class TestErrors:
    def test_add_flattens_and_skips_duplicates(self):
        first, second = ValueError("a"), ValueError("b")
        errors = Errors([first]).add(Errors([second, first]), None, second)
        assert errors.get_errors() == [first, second]
        assert str(errors) == "a; b"
        assert len(errors) == 2

    def test_db_keeps_a_single_error_as_is(self):
        db = DB("postgres")
        err = ValueError("boom")
        db.add_error(err)
        assert db.error is err
        assert db.get_errors() == [err]

    def test_db_aggregates_several_errors(self):
        db = DB("postgres")
        db.add_error(ValueError("a"))
        db.add_error(ValueError("b"))
        assert isinstance(db.error, Errors)
        assert [str(e) for e in db.get_errors()] == ["a", "b"]

    def test_record_not_found_is_never_aggregated(self):
        db = DB("postgres")
        db.add_error(ValueError("a"))
        db.add_error(ErrRecordNotFound)
        assert db.error is ErrRecordNotFound

    def test_execution_error_carries_sql(self):
        err = ExecutionError("CREATE TABLE x", RuntimeError("denied"))
        assert err.sql == "CREATE TABLE x"
        assert "denied" in str(err)

    def test_unsupported_type_message(self):
        err = UnsupportedTypeError("origin", "Point", "postgres")
        assert str(err) == "invalid sql type Point for field 'origin' for postgres"


class TestModelStruct:
    def test_struct_is_cached_per_type(self):
        class Item(BaseModel):
            id: int = 0

        assert get_model_struct(Item) is get_model_struct(Item())

    def test_id_is_the_implicit_primary_key(self):
        class Item(BaseModel):
            id: int = 0
            name: str = ""

        struct = get_model_struct(Item)
        assert [f.db_name for f in struct.primary_fields] == ["id"]

    def test_ignored_and_renamed_fields(self):
        class Item(BaseModel):
            id: int = 0
            cache: Annotated[str, Column(ignore=True)] = ""
            label: Annotated[str, Column(column="item_label")] = ""

        struct = get_model_struct(Item)
        cache = struct.field_by_name("cache")
        assert cache.is_ignored and not cache.is_normal
        assert struct.field_by_name("label").db_name == "item_label"

    def test_duplicate_column_names_are_rejected(self):
        class Item(BaseModel):
            user_id: int = 0
            other: Annotated[int, Column(column="user_id")] = 0

        with pytest.raises(ModelDefinitionError):
            get_model_struct(Item)

    def test_malformed_index_option(self):
        with pytest.raises(ModelDefinitionError):
            Column(index=3)

    def test_non_models_have_no_fields(self):
        assert get_model_struct(None).struct_fields == ()
        assert get_model_struct("users").model_name == ""

    def test_is_blank(self):
        assert is_blank(0) and is_blank("") and is_blank(None) and is_blank([])
        assert is_blank(False)
        assert not is_blank(1) and not is_blank("x")


class TestExecutors:
    def test_to_pyformat_numbered_markers(self):
        sql, params = to_pyformat("SELECT * FROM t WHERE a = $2 AND b = $1", ("x", "y"))
        assert sql == "SELECT * FROM t WHERE a = %s AND b = %s"
        assert params == ("y", "x")

    def test_to_pyformat_qmarks_and_percent(self):
        sql, params = to_pyformat("SELECT '?', 5 % 2 FROM t WHERE a LIKE ?", ("x%",))
        assert sql == "SELECT '?', 5 %% 2 FROM t WHERE a LIKE %s"
        assert params == ("x%",)

    def test_dry_run_records_writes_and_forwards_reads(self):
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE t (a integer)")
            dry = DryRunExecutor(DBAPIExecutor(conn))
            dry.exec("DROP TABLE t")
            assert dry.statements == [("DROP TABLE t", ())]
            assert dry.query("SELECT count(*) FROM sqlite_master WHERE name = ?", "t") == [(1,)]
            assert dry.scalar("SELECT count(*) FROM sqlite_master WHERE name = ?", "t") == 1
        finally:
            conn.close()

    def test_dry_run_without_inner_reads_nothing(self):
        assert DryRunExecutor().query("SELECT 1") == []

    def test_recording_executor_runs_and_logs_writes(self):
        conn = sqlite3.connect(":memory:")
        try:
            recorder = RecordingExecutor(DBAPIExecutor(conn))
            recorder.exec("CREATE TABLE t (a integer)")
            recorder.exec("INSERT INTO t (a) VALUES (?)", 7)
            assert recorder.statements == [
                ("CREATE TABLE t (a integer)", ()),
                ("INSERT INTO t (a) VALUES (?)", (7,)),
            ]
            assert recorder.scalar("SELECT a FROM t") == 7
        finally:
            conn.close()


class Tag(BaseModel):
    id: Annotated[int, Column(primary_key=True)] = 0


class Post(BaseModel):
    id: Annotated[int, Column(primary_key=True)] = 0
    tags: Annotated[List[Tag], Column(many2many="post_tags")] = []


class TestJoinTableHandler:
    def _handler(self) -> JoinTableHandler:
        return get_model_struct(Post).field_by_name("tags").relationship.join_table_handler

    def test_foreign_keys(self):
        handler = self._handler()
        assert handler.table_name == "post_tags"
        assert [k.db_name for k in handler.source_foreign_keys()] == ["post_id"]
        assert [k.db_name for k in handler.destination_foreign_keys()] == ["tag_id"]

    def test_handler_describes_its_table(self):
        struct = self._handler().model_struct()
        assert isinstance(struct, ModelStruct)
        assert [f.db_name for f in struct.primary_fields] == ["post_id", "tag_id"]
        assert all(f.options.auto_increment is False for f in struct.struct_fields)

    def test_add_links_once(self, sqlite_db):
        db = sqlite_db.auto_migrate(Tag, Post)
        assert db.error is None

        handler = self._handler()
        assert handler.add(sqlite_db, Post(id=1), Tag(id=2)) is None
        assert handler.add(sqlite_db, Post(id=1), Tag(id=2)) is None

        conn = sqlite_db.executor.connection
        assert conn.execute("SELECT post_id, tag_id FROM post_tags").fetchall() == [(1, 2)]

    def test_add_returns_the_insert_error(self, sqlite_db):
        error = self._handler().add(sqlite_db, Post(id=1), Tag(id=2))

        assert isinstance(error, ExecutionError)
        assert "no such table" in str(error)
        assert "post_tags" in error.sql
