import json
from datetime import datetime, timedelta
from typing import Any, ClassVar, Literal

from pydantic import Field

from correlator.entity import Count, Entity, Identifier, Record, Score, utcnow
from correlator.errors import Violation


class StatisticalSignature(Record):
    distributions: dict[str, Any] = Field(default_factory=dict)
    cardinality: dict[str, Any] = Field(default_factory=dict)
    correlations: dict[str, Any] = Field(default_factory=dict)
    information_metrics: dict[str, Any] = Field(default_factory=dict)
    outliers: list[dict[str, Any]] = Field(default_factory=list)


class SemanticSignature(Record):
    column_embeddings: dict[str, Any] = Field(default_factory=dict)
    value_embeddings: dict[str, Any] = Field(default_factory=dict)
    context_vector: list[float] = Field(default_factory=list)
    ontology_mappings: dict[str, Any] = Field(default_factory=dict)


class StructuralSignature(Record):
    schema_graph: dict[str, Any] = Field(default_factory=dict)
    constraints: list[dict[str, Any]] = Field(default_factory=list)
    hierarchy: dict[str, Any] = Field(default_factory=dict)
    topology: dict[str, Any] = Field(default_factory=dict)


class TimeRange(Record):
    start: datetime | None = None
    end: datetime | None = None


class TemporalSignature(Record):
    time_range: TimeRange | None = None
    patterns: list[dict[str, Any]] = Field(default_factory=list)
    seasonality: dict[str, Any] = Field(default_factory=dict)
    trends: list[dict[str, Any]] = Field(default_factory=list)


class Bounds(Record):
    north: float | None = None
    south: float | None = None
    east: float | None = None
    west: float | None = None


class SpatialSignature(Record):
    bounds: Bounds | None = None
    patterns: list[dict[str, Any]] = Field(default_factory=list)
    clusters: list[dict[str, Any]] = Field(default_factory=list)


class DatasetSignature(Entity):
    """
    Compact fingerprint of a dataset, computed once and compared many times
    when looking for candidate correlations.

    Temporal and spatial components are optional: datasets without a time or
    location axis leave them as None.
    """

    table_name: ClassVar[str] = "dataset_signatures"
    json_columns: ClassVar[frozenset[str]] = frozenset(
        {"statistical", "semantic", "structural", "temporal", "spatial", "metadata"}
    )
    search_fields: ClassVar[tuple[str, ...]] = ("algorithm",)

    dataset_id: Identifier
    statistical: StatisticalSignature = Field(default_factory=StatisticalSignature)
    semantic: SemanticSignature = Field(default_factory=SemanticSignature)
    structural: StructuralSignature = Field(default_factory=StructuralSignature)
    temporal: TemporalSignature | None = None
    spatial: SpatialSignature | None = None
    version: int = Field(default=1, ge=1)
    computed_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    computation_time: Count = 0
    algorithm: Literal["default", "neural", "statistical", "hybrid"] = "default"
    compression_ratio: Score = 0.0

    def check_rules(self) -> list[Violation]:
        violations = []
        if self.expires_at is not None and self.expires_at <= self.computed_at:
            violations.append(
                Violation(
                    "expires_at", "expiry_order", "Signature must expire after it is computed"
                )
            )

        time_range = self.temporal.time_range if self.temporal else None
        if time_range and time_range.start and time_range.end:
            if time_range.start > time_range.end:
                violations.append(
                    Violation(
                        "temporal.time_range",
                        "range_order",
                        "Time range start must not be after end",
                    )
                )

        bounds = self.spatial.bounds if self.spatial else None
        if bounds and bounds.north is not None and bounds.south is not None:
            if bounds.south > bounds.north:
                violations.append(
                    Violation(
                        "spatial.bounds", "bounds_order", "South bound must not exceed north bound"
                    )
                )
        return violations

    def derived(self) -> dict[str, Any]:
        return {
            "is_expired": self.is_expired(),
            "compression_info": self.compression_info(),
        }

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())

    def size(self) -> int:
        """Estimated stored size in bytes."""
        return len(json.dumps(self.to_database()))

    def compression_info(self) -> dict[str, Any]:
        original = self.size()
        return {
            "ratio": self.compression_ratio,
            "original_size": original,
            "compressed_size": int(original * self.compression_ratio),
            "savings": int(original * (1 - self.compression_ratio)),
        }

    def update_stats(self, computation_time: int, compression_ratio: float):
        self.computation_time = computation_time
        self.compression_ratio = compression_ratio
        self.computed_at = utcnow()
        return self.touch()

    def set_expiration(self, days: int = 30):
        self.expires_at = utcnow() + timedelta(days=days)
        return self.touch()

    def increment_version(self):
        self.version += 1
        return self.touch()
