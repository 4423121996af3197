# src/correlator/conftest.py
"""
Pytest configuration and shared fixtures.

Tests are co-located with implementation files using the *_test.py suffix.
Most tests run against RecordingDatabase, which records statements instead
of executing them. Tests that need PostgreSQL use the ``pg_db`` fixture and
are skipped when no server is reachable.
"""

import os

# Set environment BEFORE importing any app modules
os.environ["CORRELATOR_ENV"] = "test"

import itertools
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NamedTuple
from unittest.mock import MagicMock

import psycopg
import pytest
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from correlator.config import config
from correlator.db import Database

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    config.database_url.rsplit("/", 1)[0] + "/correlation_discovery_test",
)
MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"


# =============================================================================
# Recording Database
# =============================================================================


class Call(NamedTuple):
    method: str
    query: str
    params: Any


def _unwrap(params):
    if params is None:
        return None
    if isinstance(params, dict):
        return {k: v.obj if isinstance(v, Jsonb) else v for k, v in params.items()}
    return [p.obj if isinstance(p, Jsonb) else p for p in params]


class RecordingDatabase:
    """
    Stand-in for Database.

    Every helper call is appended to ``calls`` with its whitespace-normalized
    query and its parameters (Jsonb wrappers removed). Results come from a
    queue filled with respond(): a plain value is returned as is, a callable
    is called with (query, params) and an exception instance is raised. An
    empty queue yields the helper's "nothing found" result.
    """

    def __init__(self):
        self.calls: list[Call] = []
        self.responses: list = []
        self.events: list[str] = []
        self.connection = MagicMock(name="connection")

    def respond(self, *responses):
        self.responses.extend(responses)
        return self

    def queries(self) -> list[str]:
        return [call.query for call in self.calls]

    def _next(self, method: str, query: str, params, empty):
        params = _unwrap(params)
        query = " ".join(query.split())
        self.calls.append(Call(method, query, params))
        if not self.responses:
            return empty
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(query, params)
        return response

    def execute(self, query, params=None):
        return self._next("execute", query, params, 0)

    def fetch_one(self, query, params=None):
        return self._next("fetch_one", query, params, None)

    def fetch_all(self, query, params=None):
        return self._next("fetch_all", query, params, [])

    def fetch_value(self, query, params=None):
        return self._next("fetch_value", query, params, None)

    @contextmanager
    def transaction(self):
        self.events.append("begin")
        try:
            yield self.connection
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


def inserted_rows(model):
    """Response echoing a multi-row INSERT back as stored rows with fresh ids."""
    columns = [c for c in model.columns() if c != "id"]
    counter = itertools.count(1)

    def respond(query, params):
        return [
            {**dict(zip(columns, params[start : start + len(columns)])), "id": f"id-{next(counter)}"}
            for start in range(0, len(params), len(columns))
        ]

    return respond


def inserted_row(model, id="id-1"):
    """Response echoing a single-row INSERT back as the stored row."""
    columns = [c for c in model.columns() if c != "id"]
    return lambda query, params: {**dict(zip(columns, params)), "id": id}


def updated_row(model):
    """Response echoing a full-row UPDATE back as the stored row."""
    columns = [c for c in model.columns() if c != "id"]
    return lambda query, params: {**dict(zip(columns, params[:-1])), "id": params[-1]}


@pytest.fixture
def recording_db() -> RecordingDatabase:
    return RecordingDatabase()


# =============================================================================
# Pool Fixtures
# =============================================================================


@pytest.fixture
def mock_pool():
    """A ConnectionPool double whose connection() yields ``mock_pool.conn``."""
    pool = MagicMock(spec=ConnectionPool)
    conn = MagicMock(name="pooled_connection")
    pool.connection.return_value.__enter__.return_value = conn
    pool.connection.return_value.__exit__.return_value = False
    pool.conn = conn
    return pool


# =============================================================================
# PostgreSQL Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def pg_url():
    """
    Create the test database and schema once per test session.

    Skips every dependent test when the server cannot be reached.
    """
    base_url = TEST_DATABASE_URL.rsplit("/", 1)[0] + "/postgres"
    db_name = TEST_DATABASE_URL.rsplit("/", 1)[1].split("?")[0]

    try:
        admin = psycopg.connect(base_url, autocommit=True, connect_timeout=2)
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    with admin, admin.cursor() as cur:
        cur.execute(
            """
            SELECT pg_terminate_backend(pg_stat_activity.pid)
            FROM pg_stat_activity
            WHERE pg_stat_activity.datname = %s
            AND pid <> pg_backend_pid()
            """,
            (db_name,),
        )
        cur.execute(f"DROP DATABASE IF EXISTS {db_name}")
        cur.execute(f"CREATE DATABASE {db_name}")

    with psycopg.connect(TEST_DATABASE_URL) as conn:
        for file in sorted(MIGRATIONS_DIR.glob("*.sql")):
            conn.execute(file.read_text())
        conn.commit()

    return TEST_DATABASE_URL


@pytest.fixture(scope="session")
def pg_pool(pg_url):
    pool = ConnectionPool(pg_url, min_size=1, max_size=4, open=True)
    yield pool
    pool.close()


@pytest.fixture
def pg_db(pg_pool):
    """A Database on a clean schema, truncated before each test."""
    with pg_pool.connection() as conn:
        conn.execute(
            """
            TRUNCATE datasets, dataset_signatures, correlations, validations,
                     training_episodes, evolution_records
            """
        )
    return Database(pg_pool)


# =============================================================================
# Seed Data Fixtures
# =============================================================================


@pytest.fixture
def dataset_data() -> dict:
    return {
        "name": "Sales 2024",
        "description": "Daily sales by region",
        "data_schema": {"fields": [{"name": "region", "type": "string"}]},
        "source": "s3://bucket/sales.csv",
        "format": "csv",
        "tags": ["sales"],
    }


@pytest.fixture
def correlation_data() -> dict:
    return {
        "source_dataset_id": "A",
        "target_dataset_id": "B",
        "type": "temporal",
        "confidence": 0.8,
    }
