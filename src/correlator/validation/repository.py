import logging
from typing import List, Optional

from correlator.db import Database
from correlator.repository import Repository
from correlator.validation.model import Validation


class ValidationRepository(Repository[Validation]):
    """Repository for the validations table."""

    def __init__(self, db: Database, logger: logging.Logger | None = None):
        super().__init__(Validation, db, logger)

    def find_by_correlation(self, correlation_id: str) -> List[Validation]:
        """Every validation run for a correlation, newest first."""
        return self._fetch_entities(
            "find_by_correlation",
            "SELECT * FROM validations WHERE correlation_id = %s ORDER BY created_at DESC",
            (correlation_id,),
            correlation_id=correlation_id,
        )

    def latest_for(self, correlation_id: str) -> Optional[Validation]:
        rows = self._fetch_entities(
            "latest_for",
            """
            SELECT * FROM validations
            WHERE correlation_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (correlation_id,),
            correlation_id=correlation_id,
        )
        return rows[0] if rows else None
