"""
Query package for automigrate.

Clause variants produced from user query conditions, the `Expr` raw
expression, and the `Search` state a chain of `DB` calls accumulates.
"""

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
    expr,
    to_clause,
)
from automigrate.query.search import Search, Selection

__all__ = [
    # Clauses
    "Clause",
    "Equality",
    "KeyedMap",
    "Membership",
    "Nested",
    "Raw",
    "Template",
    "to_clause",
    # Expressions
    "Expr",
    "SQLValuer",
    "expr",
    # Search state
    "Search",
    "Selection",
]
