"""
Error taxonomy for automigrate.

Errors fall into four groups:

- configuration / programmer errors (`UnsupportedTypeError`,
  `ModelDefinitionError`): a model that cannot be mapped to DDL;
- query-shape errors (`InvalidQueryConditionError`, `InvalidLimitError`);
- execution errors (`ExecutionError`) wrapping whatever the execution
  collaborator raised for one statement;
- the `ErrRecordNotFound` sentinel, which never joins an aggregate.

Errors recorded on a `DB` handle are accumulated; more than one becomes an
`Errors` composite so callers can tell "one failure" from "several".
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional


class AutomigrateError(Exception):
    """Base class for all errors raised or recorded by automigrate."""


class ModelDefinitionError(AutomigrateError):
    """A model declares something that cannot be turned into a table."""


class UnsupportedTypeError(AutomigrateError):
    """A field kind has no SQL type in the active dialect."""

    def __init__(self, field_name: str, kind: str, dialect: str) -> None:
        self.field_name = field_name
        self.kind = kind
        self.dialect = dialect
        super().__init__(f"invalid sql type {kind} for field {field_name!r} for {dialect}")


class InvalidQueryConditionError(AutomigrateError):
    """A query condition has a shape the condition compiler does not accept."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"invalid query condition: {value!r}")


class InvalidLimitError(AutomigrateError):
    """LIMIT or OFFSET could not be parsed as an integer."""

    def __init__(self, name: str, value: object) -> None:
        self.name = name
        self.value = value
        super().__init__(f"invalid {name} value {value!r}: must be an integer")


class ExecutionError(AutomigrateError):
    """The execution collaborator failed to run a statement."""

    def __init__(self, sql: str, cause: BaseException) -> None:
        self.sql = sql
        self.cause = cause
        super().__init__(f"{cause} (sql: {sql})")


class RecordNotFoundError(AutomigrateError):
    """Sentinel for "record not found"; use the `ErrRecordNotFound` instance."""

    def __init__(self) -> None:
        super().__init__("record not found")


ErrRecordNotFound = RecordNotFoundError()


class Errors(AutomigrateError):
    """Several errors recorded during one call (e.g. one auto-migration batch)."""

    def __init__(self, errors: Optional[Iterable[BaseException]] = None) -> None:
        self._errors: List[BaseException] = []
        for err in errors or ():
            self._append(err)
        super().__init__(str(self))

    def _append(self, err: BaseException) -> None:
        if isinstance(err, Errors):
            for inner in err:
                self._append(inner)
        elif not any(existing is err for existing in self._errors):
            self._errors.append(err)

    def add(self, *errors: Optional[BaseException]) -> "Errors":
        """Return a new aggregate with `errors` appended (None is ignored)."""
        combined = Errors(self._errors)
        for err in errors:
            if err is not None:
                combined._append(err)
        combined.args = (str(combined),)
        return combined

    def get_errors(self) -> List[BaseException]:
        return list(self._errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(list(self._errors))

    def __len__(self) -> int:
        return len(self._errors)

    def __str__(self) -> str:
        return "; ".join(str(err) for err in self._errors)


__all__ = [
    "AutomigrateError",
    "ErrRecordNotFound",
    "Errors",
    "ExecutionError",
    "InvalidLimitError",
    "InvalidQueryConditionError",
    "ModelDefinitionError",
    "RecordNotFoundError",
    "UnsupportedTypeError",
]
