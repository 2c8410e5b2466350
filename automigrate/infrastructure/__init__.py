"""
Infrastructure package for automigrate.

Centralizes the execution collaborator (the thing that actually runs SQL):
the `Executor` protocol, driver adapters and the PostgreSQL connection
factory. Keep this layer focused on I/O, decoupled from DDL planning and
condition compilation.
"""

from automigrate.infrastructure.executor import (
    AbstractExecutor,
    DBAPIExecutor,
    DryRunExecutor,
    Executor,
    PsycopgExecutor,
    RecordingExecutor,
    connect,
    get_sync_connection,
)

__all__ = [
    "AbstractExecutor",
    "DBAPIExecutor",
    "DryRunExecutor",
    "Executor",
    "PsycopgExecutor",
    "RecordingExecutor",
    "connect",
    "get_sync_connection",
]
