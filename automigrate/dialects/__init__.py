"""
Dialects package for automigrate.

Re-exports the dialect interface, the registry, and the built-in engines,
registering each of them under its name on import:

- "mssql"          -> MSSQLDialect
- "postgres"       -> PostgresDialect
- "sqlite3"        -> SQLiteDialect (also "sqlite")
- "common"         -> CommonDialect (fallback for unknown names)
"""

from automigrate.dialects.abstract import AbstractDialect, Dialect
from automigrate.dialects.mssql import MSSQLDialect
from automigrate.dialects.postgres import PostgresDialect
from automigrate.dialects.registry import (
    available_dialects,
    get_dialect,
    new_dialect,
    register_dialect,
)
from automigrate.dialects.sqlite import CommonDialect, SQLiteDialect

register_dialect("common", CommonDialect)
register_dialect("mssql", MSSQLDialect)
register_dialect("postgres", PostgresDialect)
register_dialect("sqlite3", SQLiteDialect)
register_dialect("sqlite", SQLiteDialect)

__all__ = [
    # Abstracts
    "AbstractDialect",
    "Dialect",
    # Registry
    "available_dialects",
    "get_dialect",
    "new_dialect",
    "register_dialect",
    # Concrete dialects
    "CommonDialect",
    "MSSQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
]
