"""
Process-wide dialect registry.

Dialects register once at import time (see `automigrate.dialects`) and are
looked up by name whenever a `DB` is created. Registration and lookup are
guarded by one lock so concurrent call sites can resolve dialects safely.
Each lookup builds a fresh dialect instance bound to the caller's executor;
the registry itself only stores classes.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Type

from automigrate.dialects.abstract import AbstractDialect
from automigrate.infrastructure.executor import Executor
from automigrate.utils.logging import get_logger

log = get_logger(__name__)

_lock = threading.Lock()
_dialects: Dict[str, Type[AbstractDialect]] = {}

FALLBACK_DIALECT = "common"


def register_dialect(name: str, dialect: Type[AbstractDialect]) -> None:
    """
    Register `dialect` under `name`.

    Registering the same class again under the same name is a no-op; a
    different class replaces the previous one.
    """
    with _lock:
        previous = _dialects.get(name)
        if previous is dialect:
            return
        if previous is not None:
            log.warning(
                f"Dialect '{name}' re-registered",
                extra={"dialect": name, "previous": previous.__name__, "new": dialect.__name__},
            )
        _dialects[name] = dialect


def get_dialect(name: str) -> Optional[Type[AbstractDialect]]:
    with _lock:
        return _dialects.get(name)


def available_dialects() -> List[str]:
    """List registered dialect names."""
    with _lock:
        return sorted(_dialects)


def new_dialect(name: str, db: Optional[Executor] = None) -> AbstractDialect:
    """
    Build a dialect instance for `name`, bound to `db`.

    Unknown names fall back to the `common` dialect with a warning.
    """
    dialect_cls = get_dialect(name)
    if dialect_cls is None:
        log.warning(
            f"'{name}' is not a registered dialect, falling back to '{FALLBACK_DIALECT}'",
            extra={"dialect": name, "available": available_dialects()},
        )
        dialect_cls = get_dialect(FALLBACK_DIALECT)
        if dialect_cls is None:
            raise ValueError(f"Unknown dialect '{name}'. Available: {', '.join(available_dialects())}")
    dialect = dialect_cls()
    if db is not None:
        dialect.set_db(db)
    return dialect


__all__ = ["available_dialects", "get_dialect", "new_dialect", "register_dialect"]
