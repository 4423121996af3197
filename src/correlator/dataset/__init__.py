"""
Dataset

Registered data sources that correlations are discovered between.
"""

from correlator.dataset.model import Dataset
from correlator.dataset.repository import DatasetRepository

__all__ = ["Dataset", "DatasetRepository"]
