"""
Model descriptions for automigrate.

User models are pydantic `BaseModel` subclasses. Column options are attached
per field with `typing.Annotated`:

    class User(Model):
        name: Annotated[str, Column(size=255, index=True)] = ""
        languages: Annotated[List[Language], Column(many2many="user_languages")] = []

`get_model_struct` turns a model type into an immutable `ModelStruct` (the
ordered column descriptors, primary keys and relationships) once per type.
Scopes pair those descriptors with the values of one instance (`Field`).
"""
from __future__ import annotations

import dataclasses
import threading
import types
import typing
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    Type,
    Union,
    runtime_checkable,
)

from pydantic import BaseModel

from automigrate.errors import ModelDefinitionError
from automigrate.utils.naming import pluralize, to_column_name

IndexSpec = Union[bool, str, Tuple[str, ...]]


class Kind(str, Enum):
    """Language-level kind of a column, mapped to SQL types by dialects."""

    BOOL = "bool"
    INT = "int"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"
    STRING = "string"
    BYTES = "bytes"
    TIME = "time"
    DATE = "date"
    JSON = "json"
    STRUCT = "struct"


@dataclass(frozen=True)
class Column:
    """
    Column options for one model field.

    `index` / `unique_index` accept True (name derived from table and column),
    a name, a comma separated list of names, or a tuple of names. Fields that
    share an index name form one composite index.
    `auto_increment=None` lets the dialect decide (integer primary keys
    auto-increment); False disables it.
    """

    primary_key: bool = False
    auto_increment: Optional[bool] = None
    index: IndexSpec = False
    unique_index: IndexSpec = False
    size: Optional[int] = None
    precision: Optional[int] = None
    type: Optional[str] = None
    not_null: bool = False
    unique: bool = False
    default: Optional[str] = None
    column: Optional[str] = None
    ignore: bool = False
    kind: Optional[Kind] = None
    many2many: Optional[str] = None
    foreign_key: Optional[Tuple[str, ...]] = None
    association_foreign_key: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.size is not None and self.size < 0:
            raise ModelDefinitionError(f"column size must be >= 0, got {self.size}")
        if self.precision is not None and self.precision < 0:
            raise ModelDefinitionError(f"column precision must be >= 0, got {self.precision}")
        for option in ("index", "unique_index"):
            _parse_index_names(getattr(self, option), option)

    def index_names(self) -> Optional[List[str]]:
        """Index names for this column, "" meaning "derive one"; None if not indexed."""
        return _parse_index_names(self.index, "index")

    def unique_index_names(self) -> Optional[List[str]]:
        return _parse_index_names(self.unique_index, "unique_index")

    def additional_type(self) -> str:
        """The `NOT NULL` / `UNIQUE` / `DEFAULT x` suffix of a column definition."""
        parts = []
        if self.not_null:
            parts.append("NOT NULL")
        if self.unique:
            parts.append("UNIQUE")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


def _parse_index_names(spec: Any, option: str) -> Optional[List[str]]:
    if spec is False or spec is None:
        return None
    if spec is True:
        return [""]
    if isinstance(spec, str):
        return [name.strip() for name in spec.split(",")]
    if isinstance(spec, tuple) and all(isinstance(name, str) for name in spec):
        return list(spec) or [""]
    raise ModelDefinitionError(f"malformed {option} option: {spec!r}")


@dataclass(frozen=True)
class JoinTableForeignKey:
    db_name: str
    association_db_name: str


@dataclass(frozen=True)
class JoinTableSource:
    model_type: Any
    foreign_keys: Tuple[JoinTableForeignKey, ...] = ()


@dataclass(frozen=True)
class Relationship:
    """A many-to-many association and the handler owning its join table."""

    kind: str
    foreign_field_names: Tuple[str, ...] = ()
    foreign_db_names: Tuple[str, ...] = ()
    association_foreign_field_names: Tuple[str, ...] = ()
    association_foreign_db_names: Tuple[str, ...] = ()
    join_table_handler: Optional[Any] = None


@dataclass(frozen=True)
class StructField:
    """Static description of one model field (a column when `is_normal`)."""

    name: str
    db_name: str
    kind: Optional[Kind]
    options: Column = field(default_factory=Column)
    python_type: Any = None
    is_primary_key: bool = False
    is_normal: bool = True
    is_ignored: bool = False
    nullable: bool = False
    relationship: Optional[Relationship] = None

    def with_options(self, **changes: Any) -> "StructField":
        """Copy of this field with some column options replaced."""
        return dataclasses.replace(self, options=dataclasses.replace(self.options, **changes))


@dataclass
class Field:
    """A struct field bound to the value of one model instance."""

    struct_field: StructField
    value: Any = None
    is_blank: bool = True

    @property
    def name(self) -> str:
        return self.struct_field.name

    @property
    def db_name(self) -> str:
        return self.struct_field.db_name

    @property
    def is_primary_key(self) -> bool:
        return self.struct_field.is_primary_key

    @property
    def is_normal(self) -> bool:
        return self.struct_field.is_normal

    @property
    def is_ignored(self) -> bool:
        return self.struct_field.is_ignored

    @property
    def options(self) -> Column:
        return self.struct_field.options


@dataclass(frozen=True)
class ModelStruct:
    """Ordered column descriptors and primary keys of one model type."""

    model_type: Any
    model_name: str
    struct_fields: Tuple[StructField, ...] = ()
    primary_fields: Tuple[StructField, ...] = ()

    def table_name(self, singular: bool = False) -> str:
        """Default table name: the (pluralised) snake case model name."""
        if singular:
            return self.model_name
        return pluralize(self.model_name)

    def field_by_name(self, name: str) -> Optional[StructField]:
        db_name = to_column_name(name)
        most_matched = None
        for struct_field in self.struct_fields:
            if struct_field.name == name or struct_field.db_name == name:
                return struct_field
            if struct_field.db_name == db_name:
                most_matched = struct_field
        return most_matched


@runtime_checkable
class ModelStructProvider(Protocol):
    """Anything that describes its own columns (e.g. a join table handler)."""

    def model_struct(self) -> ModelStruct:
        ...


EMPTY_MODEL_STRUCT = ModelStruct(model_type=None, model_name="")

_struct_cache: Dict[type, ModelStruct] = {}
_struct_cache_lock = threading.RLock()


def get_model_struct(value: Any) -> ModelStruct:
    """
    Return the ModelStruct describing `value`.

    Accepts a model class, a model instance or a `ModelStructProvider`.
    Anything else (None, a table name string, ...) has no fields.
    """
    if isinstance(value, ModelStructProvider) and not isinstance(value, type):
        return value.model_struct()
    model_type = value if isinstance(value, type) else type(value)
    if not (isinstance(model_type, type) and issubclass(model_type, BaseModel)):
        return EMPTY_MODEL_STRUCT

    with _struct_cache_lock:
        cached = _struct_cache.get(model_type)
        if cached is None:
            cached = _build_model_struct(model_type)
            _struct_cache[model_type] = cached
        return cached


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    origin = typing.get_origin(annotation)
    if origin is Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def _is_model_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def _infer_kind(tp: Any) -> Optional[Kind]:
    origin = typing.get_origin(tp)
    if origin in (list, tuple, set, frozenset, dict) or tp in (list, dict):
        return Kind.JSON
    if not isinstance(tp, type):
        return None
    if issubclass(tp, bool):
        return Kind.BOOL
    if issubclass(tp, int):
        return Kind.INT
    if issubclass(tp, float):
        return Kind.FLOAT
    if issubclass(tp, Decimal):
        return Kind.DECIMAL
    if issubclass(tp, str):
        return Kind.STRING
    if issubclass(tp, (bytes, bytearray)):
        return Kind.BYTES
    if issubclass(tp, datetime):
        return Kind.TIME
    if issubclass(tp, date):
        return Kind.DATE
    if issubclass(tp, BaseModel):
        return Kind.STRUCT
    return None


def _related_model(tp: Any) -> Optional[type]:
    """The model type of a list-of-models annotation, if it is one."""
    if typing.get_origin(tp) in (list, tuple, set):
        args = typing.get_args(tp)
        if args and _is_model_type(args[0]):
            return args[0]
    return None


def _column_options(metadata: List[Any]) -> Column:
    found = [item for item in metadata if isinstance(item, Column)]
    if len(found) > 1:
        raise ModelDefinitionError("a field may carry only one Column(...) annotation")
    return found[0] if found else Column()


def _scan_fields(model_type: Type[BaseModel]) -> List[StructField]:
    """Describe the fields of `model_type`, without resolving relationships."""
    struct_fields: List[StructField] = []
    seen_db_names: Dict[str, str] = {}

    for name, info in model_type.model_fields.items():
        options = _column_options(list(info.metadata))
        annotation, nullable = _unwrap_optional(info.annotation)
        db_name = options.column or to_column_name(name)
        kind = options.kind or _infer_kind(annotation)

        is_ignored = options.ignore
        is_normal = not is_ignored
        # Nested models and lists of models are relations, not columns,
        # unless the caller forces a column type.
        if not is_ignored and options.type is None and options.kind is None:
            if _is_model_type(annotation) or _related_model(annotation) is not None:
                is_normal = False

        if is_normal:
            if db_name in seen_db_names:
                raise ModelDefinitionError(
                    f"{model_type.__name__}: fields {seen_db_names[db_name]!r} and {name!r} "
                    f"both map to column {db_name!r}"
                )
            seen_db_names[db_name] = name

        struct_fields.append(
            StructField(
                name=name,
                db_name=db_name,
                kind=kind,
                options=options,
                python_type=annotation,
                is_primary_key=options.primary_key and not is_ignored,
                is_normal=is_normal,
                is_ignored=is_ignored,
                nullable=nullable,
            )
        )

    if not any(f.is_primary_key for f in struct_fields):
        struct_fields = [
            dataclasses.replace(f, is_primary_key=True) if f.db_name == "id" and f.is_normal else f
            for f in struct_fields
        ]
    return struct_fields


def _many_to_many(
    model_type: Type[BaseModel],
    source_fields: List[StructField],
    struct_field: StructField,
) -> Relationship:
    # Imported here: join_table needs the scope machinery only at call time.
    from automigrate.domain.join_table import JoinTableHandler

    destination = _related_model(struct_field.python_type)
    if destination is None:
        raise ModelDefinitionError(
            f"{model_type.__name__}.{struct_field.name}: many2many needs a list of models"
        )
    source_pks = [f for f in source_fields if f.is_primary_key]
    destination_pks = [f for f in _scan_fields(destination) if f.is_primary_key]
    if not source_pks or not destination_pks:
        raise ModelDefinitionError(
            f"{model_type.__name__}.{struct_field.name}: both sides of a many2many need a primary key"
        )

    source_prefix = to_column_name(model_type.__name__)
    destination_prefix = to_column_name(destination.__name__)
    options = struct_field.options
    foreign_db_names = options.foreign_key or tuple(
        f"{source_prefix}_{pk.db_name}" for pk in source_pks
    )
    association_db_names = options.association_foreign_key or tuple(
        f"{destination_prefix}_{pk.db_name}" for pk in destination_pks
    )
    if len(foreign_db_names) != len(source_pks) or len(association_db_names) != len(destination_pks):
        raise ModelDefinitionError(
            f"{model_type.__name__}.{struct_field.name}: foreign key count does not match primary keys"
        )

    relationship = Relationship(
        kind="many_to_many",
        foreign_field_names=tuple(pk.db_name for pk in source_pks),
        foreign_db_names=tuple(foreign_db_names),
        association_foreign_field_names=tuple(pk.db_name for pk in destination_pks),
        association_foreign_db_names=tuple(association_db_names),
    )
    handler = JoinTableHandler.setup(relationship, options.many2many or "", model_type, destination)
    return dataclasses.replace(relationship, join_table_handler=handler)


def _build_model_struct(model_type: Type[BaseModel]) -> ModelStruct:
    struct_fields = _scan_fields(model_type)
    resolved: List[StructField] = []
    for struct_field in struct_fields:
        if struct_field.options.many2many and not struct_field.is_ignored:
            relationship = _many_to_many(model_type, struct_fields, struct_field)
            struct_field = dataclasses.replace(struct_field, relationship=relationship, is_normal=False)
        resolved.append(struct_field)

    return ModelStruct(
        model_type=model_type,
        model_name=to_column_name(model_type.__name__),
        struct_fields=tuple(resolved),
        primary_fields=tuple(f for f in resolved if f.is_primary_key),
    )


def is_blank(value: Any) -> bool:
    """True for None and for the zero value of the value's type."""
    if value is None:
        return True
    if isinstance(value, (bool, int, float, Decimal)):
        return value == 0
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if isinstance(value, BaseModel):
        return all(is_blank(getattr(value, name)) for name in type(value).model_fields)
    return False


class Model(BaseModel):
    """
    Base model with the conventional bookkeeping columns.

    Subclass it (or declare the same fields yourself):

        class User(Model):
            name: str = ""
    """

    id: typing.Annotated[int, Column(primary_key=True)] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: typing.Annotated[Optional[datetime], Column(index=True)] = None


__all__ = [
    "Column",
    "EMPTY_MODEL_STRUCT",
    "Field",
    "JoinTableForeignKey",
    "JoinTableSource",
    "Kind",
    "Model",
    "ModelStruct",
    "ModelStructProvider",
    "Relationship",
    "StructField",
    "get_model_struct",
    "is_blank",
]
