"""
Utilities package for automigrate.

Exports shared helpers for logging and naming. Keep this package lightweight
and free of SQL generation logic.
"""

from automigrate.utils.logging import configure_logging, get_logger
from automigrate.utils.naming import build_key_name, pluralize, to_column_name

__all__ = [
    "configure_logging",
    "get_logger",
    "build_key_name",
    "pluralize",
    "to_column_name",
]
