import logging
from typing import List

from correlator.dataset.model import Dataset
from correlator.db import Database
from correlator.repository import Repository


class DatasetRepository(Repository[Dataset]):
    """
    Repository for dataset-related data access.
    Adds the named queries for the datasets table on top of the generic operations.
    """

    def __init__(self, db: Database, logger: logging.Logger | None = None):
        super().__init__(Dataset, db, logger)

    def find_by_source(self, source: str) -> List[Dataset]:
        return self._fetch_entities(
            "find_by_source",
            "SELECT * FROM datasets WHERE source = %s ORDER BY last_accessed DESC",
            (source,),
            source=source,
        )

    def find_by_type(self, type: str) -> List[Dataset]:
        return self._fetch_entities(
            "find_by_type",
            "SELECT * FROM datasets WHERE type = %s ORDER BY created_at DESC",
            (type,),
            type=type,
        )

    def find_by_owner(self, owner_id: str) -> List[Dataset]:
        return self._fetch_entities(
            "find_by_owner",
            "SELECT * FROM datasets WHERE owner_id = %s ORDER BY last_accessed DESC",
            (owner_id,),
            owner_id=owner_id,
        )

    def find_by_tags(self, tags: list[str]) -> List[Dataset]:
        """Datasets carrying at least one of ``tags``."""
        return self._fetch_entities(
            "find_by_tags",
            "SELECT * FROM datasets WHERE tags && %s ORDER BY last_accessed DESC",
            (list(tags),),
            tags=tags,
        )

    def find_active(self) -> List[Dataset]:
        return self._fetch_entities(
            "find_active",
            "SELECT * FROM datasets WHERE status = 'active' ORDER BY last_accessed DESC",
        )

    def find_recently_accessed(self, days: int = 7) -> List[Dataset]:
        return self._fetch_entities(
            "find_recently_accessed",
            """
            SELECT * FROM datasets
            WHERE last_accessed >= NOW() - make_interval(days => %s)
            ORDER BY last_accessed DESC
            """,
            (days,),
            days=days,
        )

    def find_public(self) -> List[Dataset]:
        return self._fetch_entities(
            "find_public",
            """
            SELECT * FROM datasets
            WHERE visibility = 'public' AND status = 'active'
            ORDER BY created_at DESC
            """,
        )

    def search_by_description(self, term: str, limit: int = 50) -> List[Dataset]:
        """Active datasets whose name or description contains ``term``."""
        return self._fetch_entities(
            "search_by_description",
            """
            SELECT * FROM datasets
            WHERE status = 'active'
              AND (name ILIKE %(pattern)s OR description ILIKE %(pattern)s)
            ORDER BY similarity(name, %(term)s) DESC, similarity(description, %(term)s) DESC
            LIMIT %(limit)s
            """,
            {"pattern": f"%{term}%", "term": term, "limit": limit},
            term=term,
        )

    # Mutations

    def update_stats(self, id: str, record_count: int, size: int) -> Dataset:
        self._check_fields("update_stats", id, record_count=record_count, size=size)
        return self._fetch_entity(
            "update_stats",
            """
            UPDATE datasets
            SET record_count = %s, size = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (record_count, size, id),
            id,
        )

    def record_access(self, id: str) -> Dataset:
        """Touch last_accessed and bump metadata.access_count."""
        return self._fetch_entity(
            "record_access",
            """
            UPDATE datasets
            SET
                last_accessed = NOW(),
                metadata = jsonb_set(
                    COALESCE(metadata, '{}'::jsonb),
                    '{access_count}',
                    to_jsonb(COALESCE((metadata->>'access_count')::int, 0) + 1)
                ),
                updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (id,),
            id,
        )

    def add_tag(self, id: str, tag: str) -> Dataset:
        self._check_fields("add_tag", id, tags=[tag])
        return self._fetch_entity(
            "add_tag",
            """
            UPDATE datasets
            SET
                tags = CASE WHEN %(tag)s = ANY(tags) THEN tags ELSE array_append(tags, %(tag)s) END,
                updated_at = NOW()
            WHERE id = %(id)s
            RETURNING *
            """,
            {"id": id, "tag": tag},
            id,
            tag=tag,
        )

    def remove_tag(self, id: str, tag: str) -> Dataset:
        return self._fetch_entity(
            "remove_tag",
            """
            UPDATE datasets
            SET tags = array_remove(tags, %s), updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (tag, id),
            id,
            tag=tag,
        )

    def archive(self, id: str) -> Dataset:
        """Soft delete: mark the dataset archived, keeping the row."""
        return self._set_status(id, "archived", "archive")

    def activate(self, id: str) -> Dataset:
        return self._set_status(id, "active", "activate")

    def _set_status(self, id: str, status: str, operation: str) -> Dataset:
        return self._fetch_entity(
            operation,
            "UPDATE datasets SET status = %s, updated_at = NOW() WHERE id = %s RETURNING *",
            (status, id),
            id,
        )

    # Aggregates

    def type_counts(self) -> List[dict]:
        return self._fetch_rows(
            "type_counts",
            """
            SELECT type, COUNT(*) AS count
            FROM datasets
            WHERE status = 'active'
            GROUP BY type
            ORDER BY count DESC
            """,
        )

    def format_counts(self) -> List[dict]:
        return self._fetch_rows(
            "format_counts",
            """
            SELECT format, COUNT(*) AS count
            FROM datasets
            WHERE status = 'active'
            GROUP BY format
            ORDER BY count DESC
            """,
        )

    def size_distribution(self) -> List[dict]:
        """Active datasets bucketed into small (<1KB), medium (<1MB), large (<1GB) and huge."""
        return self._fetch_rows(
            "size_distribution",
            """
            SELECT
                CASE
                    WHEN size < 1024 THEN 'small'
                    WHEN size < 1048576 THEN 'medium'
                    WHEN size < 1073741824 THEN 'large'
                    ELSE 'huge'
                END AS size_category,
                COUNT(*) AS count,
                AVG(size)::double precision AS avg_size
            FROM datasets
            WHERE status = 'active'
            GROUP BY size_category
            ORDER BY size_category
            """,
        )

    def popular_tags(self, limit: int = 20) -> List[dict]:
        return self._fetch_rows(
            "popular_tags",
            """
            SELECT UNNEST(tags) AS tag, COUNT(*) AS count
            FROM datasets
            WHERE status = 'active'
            GROUP BY tag
            ORDER BY count DESC
            LIMIT %s
            """,
            (limit,),
        )
