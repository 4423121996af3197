"""
Query predicates.

A ``where`` mapping pairs column names with predicates. Bare values are
shorthand: lists, tuples and sets mean In, anything else means Eq.

    repo.find_all(where={"status": "validated", "type": ["temporal", "causal"]})
    repo.find_all(where={"confidence": Range(low=0.7), "tags": Overlaps(["ml"])})

Column names are checked against the entity's declared columns before any
SQL is built; values are always bound as parameters.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from correlator.errors import QueryError

ORDER_DIRECTIONS = ("ASC", "DESC")


@dataclass(frozen=True)
class Eq:
    value: Any


@dataclass(frozen=True)
class In:
    values: tuple

    def __init__(self, values: Iterable):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class Range:
    """Inclusive bounds; either side may be open."""

    low: Any = None
    high: Any = None


@dataclass(frozen=True)
class Overlaps:
    """Array column shares at least one element with ``values``."""

    values: tuple

    def __init__(self, values: Iterable):
        object.__setattr__(self, "values", tuple(values))


Predicate = Eq | In | Range | Overlaps


def as_predicate(value: Any) -> Predicate:
    if isinstance(value, (Eq, In, Range, Overlaps)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return In(value)
    return Eq(value)


def check_column(columns: Iterable[str], column: str) -> str:
    if column not in columns:
        raise QueryError(f"Unknown column {column!r}")
    return column


def compile_where(columns: Iterable[str], where: Mapping[str, Any] | None) -> tuple[str, list]:
    """
    Turn a where mapping into an AND-ed SQL condition.

    Returns:
        (condition, params); condition is empty when there is nothing to filter
    """
    columns = tuple(columns)
    clauses = []
    params = []

    for column, value in (where or {}).items():
        check_column(columns, column)
        predicate = as_predicate(value)

        if isinstance(predicate, Eq):
            if predicate.value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = %s")
                params.append(predicate.value)
        elif isinstance(predicate, In):
            clauses.append(f"{column} = ANY(%s)")
            params.append(list(predicate.values))
        elif isinstance(predicate, Range):
            if predicate.low is None and predicate.high is None:
                raise QueryError(f"Range on {column!r} needs at least one bound")
            if predicate.low is not None:
                clauses.append(f"{column} >= %s")
                params.append(predicate.low)
            if predicate.high is not None:
                clauses.append(f"{column} <= %s")
                params.append(predicate.high)
        else:
            clauses.append(f"{column} && %s")
            params.append(list(predicate.values))

    return " AND ".join(clauses), params


def compile_order(columns: Iterable[str], order_by: str, order: str) -> str:
    check_column(tuple(columns), order_by)
    direction = order.upper()
    if direction not in ORDER_DIRECTIONS:
        raise QueryError(f"Order must be one of {ORDER_DIRECTIONS}, got {order!r}")
    return f"{order_by} {direction}"
