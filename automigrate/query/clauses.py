"""
Query condition variants.

Callers pass loosely shaped conditions (`db.where(10)`, `db.where([1, 2])`,
`db.where("name = ?", "x")`, `db.where({"name": "x"})`, `db.where(user)`).
`to_clause` classifies that input once, at the call boundary, into one of a
closed set of frozen clause types; the compiler in `Scope.build_condition`
only dispatches on those types.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, Tuple, Union, runtime_checkable

from pydantic import BaseModel

from automigrate.domain.models import ModelStructProvider
from automigrate.errors import InvalidQueryConditionError


@runtime_checkable
class SQLValuer(Protocol):
    """A value that converts itself before being bound (like a driver Valuer)."""

    def sql_value(self) -> Any:
        ...


class Expr:
    """Raw SQL fragment with its own positional arguments."""

    __slots__ = ("expr", "args")

    def __init__(self, expr: str, *args: Any) -> None:
        self.expr = expr
        self.args = args

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expr) and other.expr == self.expr and other.args == self.args

    def __hash__(self) -> int:
        return hash((self.expr, self.args))

    def __repr__(self) -> str:
        return f"Expr({self.expr!r}, args={self.args!r})"


def expr(expression: str, *args: Any) -> Expr:
    """Build a raw SQL expression, e.g. `expr("price * ?", 2)`."""
    return Expr(expression, *args)


@dataclass(frozen=True)
class Equality:
    """Primary key equals an integer literal."""

    value: int


@dataclass(frozen=True)
class Membership:
    """Primary key in (or not in) a sequence of values."""

    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Raw:
    """
    A SQL string: numeric id, trusted predicate or column name.

    `args` fill the string's `?` placeholders (`where("name = ?", "x")`,
    `not_("name", ["a", "b"])`).
    """

    sql: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class KeyedMap:
    """Column -> value equalities; None means IS NULL."""

    items: Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True)
class Nested:
    """Equalities over every non-blank field of another model instance."""

    model: Any


@dataclass(frozen=True)
class Template:
    """
    A raw expression: SQL text with `?` placeholders, one argument each.

    Unlike `Raw` the text is never reinterpreted (no id or column-name
    shortcuts); built from `Expr` queries and used by `DB.exec`.
    """

    sql: str
    args: Tuple[Any, ...] = ()


Clause = Union[Equality, Membership, Raw, KeyedMap, Nested, Template]
ClauseTypes = (Equality, Membership, Raw, KeyedMap, Nested, Template)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset, range)) and not isinstance(value, (str, bytes))


def to_clause(query: Any, args: Sequence[Any] = ()) -> Clause:
    """
    Classify one query condition.

    Raises
    ------
    InvalidQueryConditionError
        When `query` has none of the accepted shapes.
    """
    if isinstance(query, ClauseTypes):
        return query
    if isinstance(query, Expr):
        return Template(query.expr, tuple(query.args) + tuple(args))
    if isinstance(query, SQLValuer) and not isinstance(query, BaseModel):
        query = query.sql_value()
    if isinstance(query, bool):
        raise InvalidQueryConditionError(query)
    if isinstance(query, int):
        return Equality(query)
    if isinstance(query, str):
        return Raw(query, tuple(args))
    if isinstance(query, Mapping):
        if not all(isinstance(key, str) for key in query):
            raise InvalidQueryConditionError(query)
        return KeyedMap(tuple(query.items()))
    if _is_sequence(query):
        return Membership(tuple(query))
    if isinstance(query, BaseModel) or isinstance(query, ModelStructProvider):
        return Nested(query)
    raise InvalidQueryConditionError(query)


__all__ = [
    "Clause",
    "Equality",
    "Expr",
    "KeyedMap",
    "Membership",
    "Nested",
    "Raw",
    "SQLValuer",
    "Template",
    "expr",
    "to_clause",
]
