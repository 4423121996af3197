"""
Entity

Base class for every persisted record. An entity is a pydantic model whose
fields double as the column list of its table. Building an instance never
fails; validation is a separate, explicit step that reports every broken
rule at once.

    correlation = Correlation.new(source_dataset_id=a, target_dataset_id=b, type="temporal")
    correlation = correlation.validate()      # raises ValidationError
    row = correlation.to_database()           # flat, storable mapping
    Correlation.from_database(row)            # and back again
"""

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from types import UnionType
from typing import Annotated, Any, ClassVar, Union, get_args, get_origin

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from correlator.errors import ValidationError, Violation

Identifier = Annotated[str, StringConstraints(min_length=1, max_length=255)]
Score = Annotated[float, Field(ge=0, le=1)]
NonNegative = Annotated[float, Field(ge=0)]
Count = Annotated[int, Field(ge=0)]
Tag = Annotated[str, StringConstraints(max_length=50)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """A nested structure stored inside a JSONB column."""

    model_config = ConfigDict(extra="ignore")


class Entity(BaseModel):
    """
    Schema-validated, timestamped record with a unique id.

    Subclasses declare their fields plus:
        table_name:    table the entity is stored in
        json_columns:  fields stored as JSONB
        search_fields: default columns for free-text search

    and may override check_rules() for cross-field business rules and
    derived() for read-only values exposed by to_public().
    """

    model_config = ConfigDict(extra="ignore")

    table_name: ClassVar[str]
    json_columns: ClassVar[frozenset[str]] = frozenset()
    search_fields: ClassVar[tuple[str, ...]] = ()

    id: Identifier = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # =========================================================================
    # Schema
    # =========================================================================

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        """Column names, in declaration order."""
        return tuple(cls.model_fields)

    @classmethod
    def datetime_columns(cls) -> tuple[str, ...]:
        return tuple(
            name
            for name, field in cls.model_fields.items()
            if field.annotation is datetime or datetime in get_args(field.annotation)
        )

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def new(cls, data: Mapping[str, Any] | None = None, **fields):
        """
        Build an instance without validating it.

        Unknown keys are dropped, absent fields take their defaults and
        required fields without a value are set to None, to be reported
        by validate().
        """
        values = {**(data or {}), **fields}
        return cls.model_construct(**_prepare(cls, values))

    @classmethod
    def from_database(cls, row: Mapping[str, Any] | None):
        """Rebuild an entity from a storage row, or None for no row."""
        if not row:
            return None

        values = dict(row)
        for name in cls.datetime_columns():
            if isinstance(values.get(name), str):
                values[name] = datetime.fromisoformat(values[name])
        return cls.new(values)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self):
        """
        Check the instance against its schema, then its business rules.

        Every field-level violation is reported together. Business rules
        only run once the schema passes. The instance itself is left
        untouched.

        Returns:
            A normalized copy of the entity

        Raises:
            ValidationError: listing every violation found
        """
        payload = _prune_missing(type(self), self.model_dump(warnings=False))
        try:
            validated = type(self).model_validate(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                type(self).__name__,
                [
                    Violation(
                        field=".".join(str(part) for part in error["loc"]) or None,
                        rule=error["type"],
                        message=error["msg"],
                    )
                    for error in exc.errors()
                ],
            ) from None

        broken = validated.check_rules()
        if broken:
            raise ValidationError(type(self).__name__, broken)
        return validated

    def check_rules(self) -> list[Violation]:
        """Business rules beyond the schema. Override in subclasses."""
        return []

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_database(self) -> dict[str, Any]:
        """Flat mapping of column to storable value, datetimes as ISO-8601."""
        return _storable(self.model_dump(warnings=False))

    def to_public(self) -> dict[str, Any]:
        """Storable fields plus derived, never-persisted values."""
        return {**self.to_database(), **self.derived()}

    def derived(self) -> dict[str, Any]:
        return {}

    # =========================================================================
    # Mutation
    # =========================================================================

    def update(self, data: Mapping[str, Any] | None = None, **fields):
        """
        Overwrite schema fields present in ``data`` and refresh updated_at.

        Keys that are not schema fields are ignored. Does not validate.
        """
        values = {**(data or {}), **fields}
        model_fields = type(self).model_fields
        for name, value in values.items():
            if name in model_fields:
                setattr(self, name, _construct_nested(model_fields[name].annotation, value))
        return self.touch()

    def touch(self):
        """Refresh updated_at, always moving it forward."""
        now = utcnow()
        previous = self.updated_at
        if isinstance(previous, datetime):
            if previous.tzinfo is None:
                previous = previous.replace(tzinfo=timezone.utc)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        self.updated_at = now
        return self


def _prepare(model: type[BaseModel], values: Mapping[str, Any]) -> dict[str, Any]:
    prepared = {}
    for name, field in model.model_fields.items():
        value = values.get(name)
        if value is None:
            if field.is_required():
                prepared[name] = None
            continue
        prepared[name] = _construct_nested(field.annotation, value)
    return prepared


def _construct_nested(annotation: Any, value: Any) -> Any:
    if get_origin(annotation) in (Union, UnionType):
        options = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(options) == 1:
            return _construct_nested(options[0], value)
        return value

    if isinstance(annotation, type) and issubclass(annotation, Record):
        if isinstance(value, Mapping):
            return annotation.model_construct(**_prepare(annotation, value))
        return value

    if get_origin(annotation) is list and isinstance(value, list):
        (item,) = get_args(annotation) or (Any,)
        return [_construct_nested(item, v) for v in value]

    return value


def _prune_missing(model: type[BaseModel], payload: dict[str, Any]) -> dict[str, Any]:
    """Drop unset required fields so they are reported as missing."""
    pruned = {}
    for name, value in payload.items():
        field = model.model_fields.get(name)
        if field is None:
            pruned[name] = value
            continue
        if value is None and field.is_required():
            continue

        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, Record) and isinstance(value, dict):
            value = _prune_missing(annotation, value)
        elif get_origin(annotation) is list and isinstance(value, list):
            (item,) = get_args(annotation) or (Any,)
            if isinstance(item, type) and issubclass(item, Record):
                value = [_prune_missing(item, v) if isinstance(v, dict) else v for v in value]
        pruned[name] = value
    return pruned


def _storable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _storable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_storable(v) for v in value]
    return value
