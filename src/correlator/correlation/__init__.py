"""
Correlation

Proposed relationships between datasets, their repository and the
discovery / validation workflow.
"""

from correlator.correlation.model import Correlation
from correlator.correlation.repository import CorrelationRepository
from correlator.correlation.service import CorrelationService, DiscoveryStrategy, RandomStrategy

__all__ = [
    "Correlation",
    "CorrelationRepository",
    "CorrelationService",
    "DiscoveryStrategy",
    "RandomStrategy",
]
