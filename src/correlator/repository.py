"""
Generic repository.

Translates entity operations into parameterized SQL against the entity's
table. There is no caching and no retry: every call is one round trip, and
failures are logged with context and re-raised unchanged.

Table and column names only ever come from the entity class itself; values
are always bound as ``%s`` parameters.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

import psycopg
import pydantic
from psycopg.types.json import Jsonb
from pydantic import TypeAdapter

from correlator.db import Database
from correlator.entity import Entity
from correlator.errors import NotFoundError, QueryError, ValidationError, Violation
from correlator.query import check_column, compile_order, compile_where

E = TypeVar("E", bound=Entity)
T = TypeVar("T")

DEFAULT_LIMIT = 50


class Repository(Generic[E]):
    """
    CRUD, filtering, pagination and search for one entity type.

    Domain repositories subclass this and add hand-written queries through
    _fetch_entities(), _fetch_rows() and _fetch_entity().
    """

    def __init__(self, model: type[E], db: Database, logger: logging.Logger | None = None):
        self.model = model
        self.db = db
        self.table_name = model.table_name
        self.logger = logger or logging.getLogger(__name__)

    # =========================================================================
    # Reads
    # =========================================================================

    def find_by_id(self, id: str) -> E | None:
        """Get an entity by id, or None."""
        row = self._run(
            "find_by_id",
            self.db.fetch_one,
            f"SELECT * FROM {self.table_name} WHERE id = %s LIMIT 1",
            (id,),
            id=id,
        )
        return self.model.from_database(row)

    def find_all(
        self,
        where: Mapping[str, Any] | None = None,
        order_by: str = "created_at",
        order: str = "DESC",
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> list[E]:
        """List entities matching every condition in ``where``."""
        columns = self.model.columns()
        condition, params = compile_where(columns, where)
        ordering = compile_order(columns, order_by, order)

        query = f"SELECT * FROM {self.table_name}"
        if condition:
            query += f" WHERE {condition}"
        query += f" ORDER BY {ordering} LIMIT %s OFFSET %s"
        params.extend([limit, offset])

        return self._fetch_entities("find_all", query, params)

    def find_many(self, ids: Iterable[str]) -> list[E]:
        """Get every entity whose id is in ``ids``; order is unspecified."""
        ids = list(ids)
        if not ids:
            return []
        return self._fetch_entities(
            "find_many",
            f"SELECT * FROM {self.table_name} WHERE id = ANY(%s)",
            (ids,),
            count=len(ids),
        )

    def count(self, where: Mapping[str, Any] | None = None) -> int:
        condition, params = compile_where(self.model.columns(), where)
        query = f"SELECT COUNT(*) AS count FROM {self.table_name}"
        if condition:
            query += f" WHERE {condition}"

        return int(self._run("count", self.db.fetch_value, query, params) or 0)

    def exists(self, id: str) -> bool:
        result = self._run(
            "exists",
            self.db.fetch_value,
            f"SELECT EXISTS(SELECT 1 FROM {self.table_name} WHERE id = %s) AS exists",
            (id,),
            id=id,
        )
        return bool(result)

    def paginate(
        self,
        page: int = 1,
        limit: int = DEFAULT_LIMIT,
        where: Mapping[str, Any] | None = None,
        order_by: str = "created_at",
        order: str = "DESC",
    ) -> dict:
        """
        One page of results plus page metadata.

        Returns:
            {"data": [...], "pagination": {page, limit, total, pages, has_next, has_prev}}
        """
        if page < 1:
            raise QueryError(f"page must be >= 1, got {page}")
        if limit < 1:
            raise QueryError(f"limit must be >= 1, got {limit}")

        data = self.find_all(
            where=where,
            order_by=order_by,
            order=order,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self.count(where)
        pages = math.ceil(total / limit)

        return {
            "data": data,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": pages,
                "has_next": page < pages,
                "has_prev": page > 1,
            },
        }

    def search(
        self,
        term: str,
        fields: Iterable[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[E]:
        """
        Case-insensitive substring search across ``fields``.

        Ranked by trigram similarity to the first field.
        """
        fields = list(fields or self.model.search_fields)
        if not fields:
            raise QueryError(f"No search fields given for {self.table_name}")
        columns = self.model.columns()
        for field in fields:
            check_column(columns, field)

        matches = " OR ".join(f"{field}::text ILIKE %(pattern)s" for field in fields)
        query = f"""
            SELECT * FROM {self.table_name}
            WHERE {matches}
            ORDER BY similarity({fields[0]}::text, %(term)s) DESC
            LIMIT %(limit)s
        """
        params = {"pattern": f"%{term}%", "term": term, "limit": limit}

        return self._fetch_entities("search", query, params, term=term)

    def stats(self) -> dict:
        """Row totals, overall and created in the last day, week and month."""
        row = self._run(
            "stats",
            self.db.fetch_one,
            f"""
            SELECT
                COUNT(*) AS total,
                COUNT(DISTINCT id) AS unique_ids,
                COUNT(*) FILTER (WHERE created_at >= NOW() - INTERVAL '24 hours') AS last_24h,
                COUNT(*) FILTER (WHERE created_at >= NOW() - INTERVAL '7 days') AS last_7d,
                COUNT(*) FILTER (WHERE created_at >= NOW() - INTERVAL '30 days') AS last_30d
            FROM {self.table_name}
            """,
            None,
        )
        return dict(row or {})

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, data: Mapping[str, Any] | E) -> E:
        """
        Validate and insert a new entity.

        The id column is assigned by the table. Nothing is written when
        validation fails.

        Raises:
            ValidationError: if the data breaks the schema or a business rule
        """
        entity = self._validated(data, "create")
        columns = self._writable_columns()
        placeholders = ", ".join(["%s"] * len(columns))
        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES ({placeholders})
            RETURNING *
        """

        row = self._run("create", self.db.fetch_one, query, self._params(entity, columns))
        self.logger.info("Created %s id=%s", self.table_name, row["id"])
        return self.model.from_database(row)

    def create_many(self, items: Iterable[Mapping[str, Any] | E]) -> list[E]:
        """
        Validate every item, then insert them all in one statement.

        A single invalid item rejects the whole batch before any insert.
        """
        items = list(items)
        if not items:
            return []

        entities = []
        violations = []
        for index, item in enumerate(items):
            try:
                entities.append(self._validated(item, "create_many", log=False))
            except ValidationError as e:
                violations.extend(
                    Violation(
                        field=f"{index}.{v.field}" if v.field else str(index),
                        rule=v.rule,
                        message=v.message,
                    )
                    for v in e.violations
                )
        if violations:
            error = ValidationError(self.model.__name__, violations)
            self.logger.error("create_many failed table=%s error=%s", self.table_name, error)
            raise error

        columns = self._writable_columns()
        row_placeholder = "(" + ", ".join(["%s"] * len(columns)) + ")"
        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES {", ".join([row_placeholder] * len(entities))}
            RETURNING *
        """
        params = [value for entity in entities for value in self._params(entity, columns)]

        rows = self._run("create_many", self.db.fetch_all, query, params, count=len(entities))
        self.logger.info("Created %s %s records", len(rows), self.table_name)
        return [self.model.from_database(row) for row in rows]

    def update(self, id: str, data: Mapping[str, Any]) -> E:
        """
        Apply ``data`` to an existing entity and rewrite its row.

        The row is read with FOR UPDATE inside a transaction, so concurrent
        updates to the same id are serialized instead of losing writes.

        Raises:
            NotFoundError: if no row has this id
            ValidationError: if the updated entity is invalid
        """
        with self.db.transaction():
            row = self._run(
                "update",
                self.db.fetch_one,
                f"SELECT * FROM {self.table_name} WHERE id = %s FOR UPDATE",
                (id,),
                id=id,
            )
            if row is None:
                self.logger.info("%s not found for update id=%s", self.table_name, id)
                raise NotFoundError(self.table_name, id)

            existing = self.model.from_database(row)
            existing.update(data)
            entity = self._validated(existing, "update", id=id)

            columns = self._writable_columns()
            assignments = ", ".join(f"{column} = %s" for column in columns)
            query = f"""
                UPDATE {self.table_name}
                SET {assignments}
                WHERE id = %s
                RETURNING *
            """
            params = [*self._params(entity, columns), id]
            row = self._run("update", self.db.fetch_one, query, params, id=id)

        self.logger.info("Updated %s id=%s", self.table_name, id)
        return self.model.from_database(row)

    def delete(self, id: str) -> bool:
        """Hard delete. Returns False when there was no such row."""
        deleted = self._run(
            "delete",
            self.db.execute,
            f"DELETE FROM {self.table_name} WHERE id = %s",
            (id,),
            id=id,
        )
        if not deleted:
            self.logger.debug("%s not found for delete id=%s", self.table_name, id)
            return False

        self.logger.info("Deleted %s id=%s", self.table_name, id)
        return True

    def transaction(self, callback: Callable[[psycopg.Connection], T]) -> T:
        """
        Run ``callback`` with a single connection, atomically.

        Repository calls made inside the callback use the same connection,
        so everything commits together or rolls back on any exception.
        """
        try:
            with self.db.transaction() as conn:
                return callback(conn)
        except Exception as e:
            self.logger.error("Transaction rolled back table=%s error=%s", self.table_name, e)
            raise

    # =========================================================================
    # Helpers for subclasses
    # =========================================================================

    def _fetch_entities(self, operation: str, query: str, params=None, **context) -> list[E]:
        rows = self._run(operation, self.db.fetch_all, query, params, **context)
        return [self.model.from_database(row) for row in rows]

    def _fetch_rows(self, operation: str, query: str, params=None, **context) -> list[dict]:
        return self._run(operation, self.db.fetch_all, query, params, **context)

    def _fetch_entity(self, operation: str, query: str, params, id: str, **context) -> E:
        """Run a single-row statement that must hit the row with ``id``."""
        row = self._run(operation, self.db.fetch_one, query, params, id=id, **context)
        if row is None:
            self.logger.info("%s not found for %s id=%s", self.table_name, operation, id)
            raise NotFoundError(self.table_name, id)
        return self.model.from_database(row)

    def _run(self, operation: str, fetch: Callable, query: str, params, **context):
        try:
            return fetch(query, params)
        except Exception as e:
            self._log_failure(operation, e, **context)
            raise

    def _log_failure(self, operation: str, error: Exception, **context) -> None:
        details = " ".join(f"{key}={value}" for key, value in context.items())
        self.logger.error(
            "%s failed table=%s %s error=%s",
            operation,
            self.table_name,
            details,
            error,
        )

    def _validated(self, data: Mapping[str, Any] | E, operation: str, log: bool = True, **context) -> E:
        entity = data if isinstance(data, self.model) else self.model.new(data)
        try:
            return entity.validate()
        except ValidationError as e:
            if log:
                self._log_failure(operation, e, **context)
            raise

    def _check_fields(self, operation: str, id: str, **values) -> None:
        """
        Check column values against the entity's declared field types
        before a hand-written UPDATE stores them.

        Raises:
            ValidationError: listing every value that breaks its field's constraints
        """
        violations = []
        for name, value in values.items():
            adapter = TypeAdapter(self.model.model_fields[name].rebuild_annotation())
            try:
                adapter.validate_python(value)
            except pydantic.ValidationError as exc:
                violations.extend(
                    Violation(
                        field=".".join(str(part) for part in (name, *error["loc"])),
                        rule=error["type"],
                        message=error["msg"],
                    )
                    for error in exc.errors()
                )
        if violations:
            error = ValidationError(self.model.__name__, violations)
            self._log_failure(operation, error, id=id)
            raise error

    def _writable_columns(self) -> list[str]:
        return [column for column in self.model.columns() if column != "id"]

    def _params(self, entity: E, columns: list[str]) -> list:
        values = entity.to_database()
        return [
            Jsonb(values[column]) if column in self.model.json_columns else values[column]
            for column in columns
        ]
