from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field, StringConstraints

from correlator.entity import Entity, Identifier, Score, Tag, utcnow
from correlator.errors import Violation

CorrelationType = Literal[
    "one_to_one",
    "one_to_many",
    "many_to_one",
    "many_to_many",
    "weighted_many_to_many",
    "temporal",
    "spatial",
    "semantic",
    "statistical",
    "structural",
    "functional",
    "causal",
]
CorrelationStatus = Literal["proposed", "validated", "invalidated", "archived"]
DiscoveryMethod = Literal[
    "",
    "neural_network",
    "mcts",
    "evolutionary",
    "statistical",
    "information_theory",
    "manual",
    "hybrid",
]

VALID_THRESHOLD = 0.5
SIGNIFICANT_CONFIDENCE = 0.7
SIGNIFICANT_VALIDITY = 0.6


class Correlation(Entity):
    """A proposed relationship between a source and a target dataset."""

    table_name: ClassVar[str] = "correlations"
    json_columns: ClassVar[frozenset[str]] = frozenset({"parameters", "metadata"})
    search_fields: ClassVar[tuple[str, ...]] = ("description",)

    source_dataset_id: Identifier
    target_dataset_id: Identifier
    type: CorrelationType
    parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: Score = 0.0
    validity_score: Score = 0.0
    description: Annotated[str, StringConstraints(max_length=2000)] = ""
    status: CorrelationStatus = "proposed"
    parent_correlation_id: Identifier | None = None
    version: Annotated[int, Field(ge=1)] = 1
    tags: list[Tag] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    discovery_method: DiscoveryMethod = ""
    last_validated: datetime | None = None

    def check_rules(self) -> list[Violation]:
        if self.source_dataset_id == self.target_dataset_id:
            return [
                Violation(
                    field=None,
                    rule="distinct_datasets",
                    message="Source and target datasets cannot be the same",
                )
            ]
        return []

    def derived(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid(),
            "is_significant": self.is_significant(),
        }

    def is_valid(self) -> bool:
        return self.validity_score >= VALID_THRESHOLD and self.status == "validated"

    def is_significant(self) -> bool:
        return (
            self.confidence >= SIGNIFICANT_CONFIDENCE
            and self.validity_score >= SIGNIFICANT_VALIDITY
        )

    def record_validation(self, validity_score: float, status: CorrelationStatus | None = None):
        self.validity_score = validity_score
        self.last_validated = utcnow()
        if status:
            self.status = status
        return self.touch()

    def increment_version(self):
        self.version += 1
        return self.touch()

    def archive(self):
        self.status = "archived"
        return self.touch()

    def add_tag(self, tag: str):
        if tag not in self.tags:
            self.tags = [*self.tags, tag]
            self.touch()
        return self

    def remove_tag(self, tag: str):
        self.tags = [t for t in self.tags if t != tag]
        return self.touch()
