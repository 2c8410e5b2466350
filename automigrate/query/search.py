"""
Search state: the clauses and settings one query accumulates.

Every chained call on a `DB` works on a clone, so two queries derived from
the same base never share (and never mutate) each other's lists.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from automigrate.query.clauses import Clause, Expr, to_clause


@dataclass(frozen=True)
class Selection:
    """SELECT projection: one expression string or a list of them, plus args."""

    query: Union[str, Tuple[str, ...]]
    args: Tuple[Any, ...] = ()


@dataclass
class Search:
    where_conditions: List[Clause] = field(default_factory=list)
    or_conditions: List[Clause] = field(default_factory=list)
    not_conditions: List[Clause] = field(default_factory=list)
    having_conditions: List[Clause] = field(default_factory=list)
    join_conditions: List[Clause] = field(default_factory=list)
    selects: Optional[Selection] = None
    orders: List[Union[str, Expr]] = field(default_factory=list)
    offset: Any = -1
    limit: Any = -1
    group: str = ""
    table_name: str = ""
    raw: bool = False
    unscoped: bool = False
    ignore_order_query: bool = False

    def clone(self) -> "Search":
        """Deep, independent copy: mutating the clone never touches self."""
        return Search(
            where_conditions=list(self.where_conditions),
            or_conditions=list(self.or_conditions),
            not_conditions=list(self.not_conditions),
            having_conditions=list(self.having_conditions),
            join_conditions=list(self.join_conditions),
            selects=self.selects,
            orders=list(self.orders),
            offset=self.offset,
            limit=self.limit,
            group=self.group,
            table_name=self.table_name,
            raw=self.raw,
            unscoped=self.unscoped,
            ignore_order_query=self.ignore_order_query,
        )

    # Clauses are frozen, so copying the lists is enough to isolate clones.

    def where(self, query: Any, *args: Any) -> "Search":
        self.where_conditions.append(to_clause(query, args))
        return self

    def or_(self, query: Any, *args: Any) -> "Search":
        self.or_conditions.append(to_clause(query, args))
        return self

    def not_(self, query: Any, *args: Any) -> "Search":
        self.not_conditions.append(to_clause(query, args))
        return self

    def having(self, query: Any, *args: Any) -> "Search":
        self.having_conditions.append(to_clause(query, args))
        return self

    def joins(self, query: Any, *args: Any) -> "Search":
        self.join_conditions.append(to_clause(query, args))
        return self

    def order(self, value: Union[str, Expr], reorder: bool = False) -> "Search":
        if reorder:
            self.orders = []
        if value is not None and value != "":
            self.orders.append(value)
        return self

    def select(self, query: Union[str, List[str], Tuple[str, ...]], *args: Any) -> "Search":
        if not isinstance(query, str):
            query = tuple(query)
        self.selects = Selection(query, tuple(args))
        return self

    def set_limit(self, limit: Any) -> "Search":
        self.limit = limit
        return self

    def set_offset(self, offset: Any) -> "Search":
        self.offset = offset
        return self

    def set_group(self, query: str) -> "Search":
        self.group = query
        return self

    def set_raw(self, raw: bool) -> "Search":
        self.raw = raw
        return self

    def set_unscoped(self) -> "Search":
        self.unscoped = True
        return self

    def table(self, name: str) -> "Search":
        self.table_name = name
        return self


__all__ = ["Search", "Selection"]
