"""Exceptions raised by the entity and repository layers."""

from dataclasses import dataclass


class CorrelatorError(Exception):
    """Base class for correlator errors."""


@dataclass(frozen=True)
class Violation:
    """
    A single broken rule.

    ``field`` is the dotted path of the offending field, or None for
    business rules spanning several fields.
    """

    field: str | None
    rule: str
    message: str

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ValidationError(CorrelatorError):
    """An entity failed its schema or business-rule checks."""

    def __init__(self, entity: str, violations: list[Violation]):
        self.entity = entity
        self.violations = list(violations)
        details = ", ".join(str(v) for v in self.violations)
        super().__init__(f"{entity} validation failed: {details}")

    @property
    def fields(self) -> set[str]:
        return {v.field for v in self.violations if v.field}


class NotFoundError(CorrelatorError):
    """An operation required a row that does not exist."""

    def __init__(self, table: str, id: str):
        self.table = table
        self.id = id
        super().__init__(f"{table} {id} not found")


class QueryError(CorrelatorError, ValueError):
    """A query description referenced an unknown column or option."""
