"""
automigrate - additive schema migrations for pydantic models.

Given model classes, automigrate creates the tables, columns and indexes
that are missing from a live database, and never drops or alters what is
already there:

- per-engine type mapping and introspection (PostgreSQL, SQL Server, SQLite)
- many-to-many join tables
- a query-condition compiler shared with index creation and raw execution

Errors accumulate on the `DB` handle instead of raising mid-batch.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from automigrate.config import Settings, get_settings
from automigrate.db import DB
from automigrate.dialects import (
    AbstractDialect,
    Dialect,
    available_dialects,
    new_dialect,
    register_dialect,
)
from automigrate.domain import Column, JoinTableHandler, Kind, Model
from automigrate.errors import (
    AutomigrateError,
    Errors,
    ErrRecordNotFound,
    ExecutionError,
    InvalidLimitError,
    InvalidQueryConditionError,
    ModelDefinitionError,
    UnsupportedTypeError,
)
from automigrate.infrastructure import (
    DBAPIExecutor,
    DryRunExecutor,
    Executor,
    PsycopgExecutor,
    RecordingExecutor,
)
from automigrate.query import Expr, expr
from automigrate.scope import Scope
from automigrate.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Entry points
    "DB",
    "Scope",
    # Models
    "Column",
    "JoinTableHandler",
    "Kind",
    "Model",
    # Queries
    "Expr",
    "expr",
    # Dialects
    "AbstractDialect",
    "Dialect",
    "available_dialects",
    "new_dialect",
    "register_dialect",
    # Execution
    "DBAPIExecutor",
    "DryRunExecutor",
    "Executor",
    "PsycopgExecutor",
    "RecordingExecutor",
    # Errors
    "AutomigrateError",
    "ErrRecordNotFound",
    "Errors",
    "ExecutionError",
    "InvalidLimitError",
    "InvalidQueryConditionError",
    "ModelDefinitionError",
    "UnsupportedTypeError",
    # Logging
    "configure_logging",
    "get_logger",
]
