import logging
from typing import List, Optional

from correlator.correlation.model import Correlation
from correlator.db import Database
from correlator.errors import NotFoundError
from correlator.repository import Repository

SIMILAR_LIMIT = 10


class CorrelationRepository(Repository[Correlation]):
    """
    Repository for correlation-related data access.
    Adds the named queries for the correlations table on top of the generic operations.
    """

    def __init__(self, db: Database, logger: logging.Logger | None = None):
        super().__init__(Correlation, db, logger)

    def find_by_datasets(self, source_dataset_id: str, target_dataset_id: str) -> List[Correlation]:
        return self._fetch_entities(
            "find_by_datasets",
            """
            SELECT * FROM correlations
            WHERE source_dataset_id = %s AND target_dataset_id = %s
            ORDER BY confidence DESC, created_at DESC
            """,
            (source_dataset_id, target_dataset_id),
            source_dataset_id=source_dataset_id,
            target_dataset_id=target_dataset_id,
        )

    def find_by_type(self, type: str) -> List[Correlation]:
        return self._fetch_entities(
            "find_by_type",
            "SELECT * FROM correlations WHERE type = %s ORDER BY confidence DESC",
            (type,),
            type=type,
        )

    def find_by_status(self, status: str) -> List[Correlation]:
        return self._fetch_entities(
            "find_by_status",
            "SELECT * FROM correlations WHERE status = %s ORDER BY created_at DESC",
            (status,),
            status=status,
        )

    def find_validated(self, min_confidence: float = 0.5) -> List[Correlation]:
        return self._fetch_entities(
            "find_validated",
            """
            SELECT * FROM correlations
            WHERE status = 'validated' AND confidence >= %s
            ORDER BY confidence DESC
            """,
            (min_confidence,),
            min_confidence=min_confidence,
        )

    def find_significant(
        self, min_confidence: float = 0.7, min_validity: float = 0.6
    ) -> List[Correlation]:
        return self._fetch_entities(
            "find_significant",
            """
            SELECT * FROM correlations
            WHERE confidence >= %s AND validity_score >= %s
            ORDER BY confidence DESC
            """,
            (min_confidence, min_validity),
            min_confidence=min_confidence,
            min_validity=min_validity,
        )

    def find_by_discovery_method(self, method: str) -> List[Correlation]:
        return self._fetch_entities(
            "find_by_discovery_method",
            "SELECT * FROM correlations WHERE discovery_method = %s ORDER BY confidence DESC",
            (method,),
            discovery_method=method,
        )

    def find_by_tags(self, tags: list[str]) -> List[Correlation]:
        return self._fetch_entities(
            "find_by_tags",
            "SELECT * FROM correlations WHERE tags && %s ORDER BY confidence DESC",
            (list(tags),),
            tags=tags,
        )

    def find_children(self, parent_correlation_id: str) -> List[Correlation]:
        """Direct descendants in the version lineage, newest version first."""
        return self._fetch_entities(
            "find_children",
            "SELECT * FROM correlations WHERE parent_correlation_id = %s ORDER BY version DESC",
            (parent_correlation_id,),
            parent_correlation_id=parent_correlation_id,
        )

    def find_similar(self, id: str, threshold: float = 0.8) -> List[Correlation]:
        """
        Correlations of the same type sharing a dataset with ``id`` and
        whose confidence lies within ``threshold`` of it.

        Raises:
            NotFoundError: if the reference correlation does not exist
        """
        reference = self.find_by_id(id)
        if reference is None:
            self.logger.info("Reference correlation not found id=%s", id)
            raise NotFoundError(self.table_name, id)

        return self._fetch_entities(
            "find_similar",
            """
            SELECT * FROM correlations
            WHERE id != %s
              AND type = %s
              AND ABS(confidence - %s) <= %s
              AND (source_dataset_id = %s OR target_dataset_id = %s)
            ORDER BY confidence DESC
            LIMIT %s
            """,
            (
                id,
                reference.type,
                reference.confidence,
                threshold,
                reference.source_dataset_id,
                reference.target_dataset_id,
                SIMILAR_LIMIT,
            ),
            id=id,
        )

    # Mutations

    def update_validation(
        self, id: str, validity_score: float, status: Optional[str] = None
    ) -> Correlation:
        """Record a validation outcome; status is left alone when not given."""
        values = {"validity_score": validity_score}
        if status is not None:
            values["status"] = status
        self._check_fields("update_validation", id, **values)

        return self._fetch_entity(
            "update_validation",
            """
            UPDATE correlations
            SET
                validity_score = %s,
                status = COALESCE(%s, status),
                last_validated = NOW(),
                updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (validity_score, status, id),
            id,
        )

    def increment_version(self, id: str) -> Correlation:
        return self._fetch_entity(
            "increment_version",
            """
            UPDATE correlations
            SET version = version + 1, updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (id,),
            id,
        )

    def archive(self, id: str) -> Correlation:
        """Soft delete: mark the correlation archived, keeping the row."""
        return self._fetch_entity(
            "archive",
            """
            UPDATE correlations
            SET status = 'archived', updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (id,),
            id,
        )

    # Aggregates

    def type_stats(self) -> List[dict]:
        return self._fetch_rows(
            "type_stats",
            """
            SELECT type, COUNT(*) AS count, AVG(confidence) AS avg_confidence
            FROM correlations
            GROUP BY type
            ORDER BY count DESC
            """,
        )

    def discovery_method_stats(self) -> List[dict]:
        return self._fetch_rows(
            "discovery_method_stats",
            """
            SELECT discovery_method, COUNT(*) AS count, AVG(confidence) AS avg_confidence
            FROM correlations
            WHERE discovery_method IS NOT NULL AND discovery_method != ''
            GROUP BY discovery_method
            ORDER BY count DESC
            """,
        )

    def validation_stats(self) -> List[dict]:
        return self._fetch_rows(
            "validation_stats",
            """
            SELECT
                status,
                COUNT(*) AS count,
                AVG(confidence) AS avg_confidence,
                AVG(validity_score) AS avg_validity,
                AVG(last_validated - created_at) AS avg_validation_time
            FROM correlations
            GROUP BY status
            ORDER BY count DESC
            """,
        )

    def network(self, source_dataset_id: str) -> List[dict]:
        """Validated correlations from one dataset, grouped by target dataset."""
        return self._fetch_rows(
            "network",
            """
            WITH correlation_stats AS (
                SELECT
                    target_dataset_id,
                    COUNT(*) AS correlation_count,
                    AVG(confidence) AS avg_confidence,
                    MAX(confidence) AS max_confidence,
                    ARRAY_AGG(DISTINCT type) AS types
                FROM correlations
                WHERE source_dataset_id = %s AND status = 'validated'
                GROUP BY target_dataset_id
            )
            SELECT
                ds.id,
                ds.name,
                ds.type,
                cs.correlation_count,
                cs.avg_confidence,
                cs.max_confidence,
                cs.types
            FROM correlation_stats cs
            JOIN datasets ds ON ds.id = cs.target_dataset_id
            ORDER BY cs.correlation_count DESC, cs.avg_confidence DESC
            """,
            (source_dataset_id,),
            source_dataset_id=source_dataset_id,
        )

    def timeline(self, dataset_id: str, days: int = 30) -> List[dict]:
        """Daily counts and averages for correlations touching ``dataset_id``."""
        return self._fetch_rows(
            "timeline",
            """
            SELECT
                DATE(created_at) AS date,
                COUNT(*) AS count,
                AVG(confidence) AS avg_confidence,
                AVG(validity_score) AS avg_validity
            FROM correlations
            WHERE (source_dataset_id = %(dataset_id)s OR target_dataset_id = %(dataset_id)s)
              AND created_at >= NOW() - make_interval(days => %(days)s)
            GROUP BY DATE(created_at)
            ORDER BY date
            """,
            {"dataset_id": dataset_id, "days": days},
            dataset_id=dataset_id,
            days=days,
        )
