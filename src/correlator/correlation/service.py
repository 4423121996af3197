"""
Correlation discovery and validation workflows.

Scoring is delegated to a DiscoveryStrategy. The bundled RandomStrategy
draws scores at random and performs no analysis of the data; it exists so
the workflow can be exercised end to end until a real strategy is plugged in.
"""

import logging
from typing import Protocol

import numpy as np

from correlator.correlation.model import VALID_THRESHOLD, Correlation
from correlator.correlation.repository import CorrelationRepository
from correlator.dataset.model import Dataset
from correlator.dataset.repository import DatasetRepository
from correlator.errors import NotFoundError
from correlator.validation.model import Validation
from correlator.validation.repository import ValidationRepository

logger = logging.getLogger(__name__)


class DiscoveryStrategy(Protocol):
    def score_discovery(self, source: Dataset, target: Dataset, type: str) -> float:
        """Confidence in [0, 1] that ``type`` relates the two datasets."""
        ...

    def score_validation(self, correlation: Correlation) -> dict[str, float]:
        """Validation fields (scores, conservation error, accuracy) for a correlation."""
        ...


class RandomStrategy:
    """Stub strategy: uniform random scores in fixed, optimistic ranges."""

    def __init__(self, seed: int | None = None):
        self.rng = np.random.default_rng(seed)

    def score_discovery(self, source: Dataset, target: Dataset, type: str) -> float:
        return float(self.rng.uniform(0.7, 1.0))

    def score_validation(self, correlation: Correlation) -> dict[str, float]:
        return {
            "validity_score": float(self.rng.uniform(0.7, 1.0)),
            "statistical_score": float(self.rng.uniform(0.7, 1.0)),
            "semantic_score": float(self.rng.uniform(0.7, 1.0)),
            "structural_score": float(self.rng.uniform(0.7, 1.0)),
            "conservation_error": float(self.rng.uniform(0.0, 0.05)),
            "test_accuracy": float(self.rng.uniform(0.8, 1.0)),
        }


class CorrelationService:
    """Discovers correlations between datasets and records their validation."""

    def __init__(
        self,
        datasets: DatasetRepository,
        correlations: CorrelationRepository,
        validations: ValidationRepository,
        strategy: DiscoveryStrategy | None = None,
    ):
        self.datasets = datasets
        self.correlations = correlations
        self.validations = validations
        self.strategy = strategy or RandomStrategy()

    def discover(
        self,
        source_dataset_id: str,
        target_dataset_id: str,
        type: str,
        discovery_method: str = "statistical",
        description: str = "",
    ) -> Correlation:
        """
        Score and store a proposed correlation between two datasets.

        Raises:
            NotFoundError: if either dataset does not exist
            ValidationError: if the correlation is invalid (e.g. same dataset twice)
        """
        source = self._require_dataset(source_dataset_id)
        target = self._require_dataset(target_dataset_id)

        confidence = self.strategy.score_discovery(source, target, type)
        correlation = self.correlations.create(
            {
                "source_dataset_id": source.id,
                "target_dataset_id": target.id,
                "type": type,
                "confidence": confidence,
                "discovery_method": discovery_method,
                "description": description,
            }
        )
        logger.info(
            "Discovered correlation id=%s type=%s confidence=%.3f",
            correlation.id,
            type,
            confidence,
        )
        return correlation

    def validate(self, correlation_id: str, method: str = "ensemble") -> Validation:
        """
        Validate a correlation and update its status.

        The validation record and the correlation update are written in one
        transaction. The correlation becomes ``validated`` when the validity
        score reaches 0.5 and ``invalidated`` otherwise.
        """
        correlation = self.correlations.find_by_id(correlation_id)
        if correlation is None:
            raise NotFoundError(Correlation.table_name, correlation_id)

        scores = self.strategy.score_validation(correlation)
        status = "validated" if scores["validity_score"] >= VALID_THRESHOLD else "invalidated"

        def record(conn):
            validation = self.validations.create(
                {"correlation_id": correlation.id, "validation_method": method, **scores}
            )
            self.correlations.update_validation(correlation.id, validation.validity_score, status)
            return validation

        validation = self.correlations.transaction(record)
        logger.info(
            "Validated correlation id=%s status=%s validity=%.3f",
            correlation.id,
            status,
            validation.validity_score,
        )
        return validation

    def statistics(self) -> dict:
        """Dataset and correlation totals, with correlations broken down by status."""
        by_status = {
            row["status"]: int(row["count"]) for row in self.correlations.validation_stats()
        }
        return {
            "datasets": self.datasets.count(),
            "correlations": sum(by_status.values()),
            "by_status": by_status,
        }

    def _require_dataset(self, dataset_id: str) -> Dataset:
        dataset = self.datasets.find_by_id(dataset_id)
        if dataset is None:
            raise NotFoundError(Dataset.table_name, dataset_id)
        return dataset
