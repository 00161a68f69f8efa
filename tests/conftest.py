"""
Shared test fixtures.

The mock Supabase client keeps rows in memory per table and evaluates the
PostgREST filters the services use, so services can be exercised end to end
without a database.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are loaded at import time and need these
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from contextlib import ExitStack
from unittest.mock import patch
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Generator, Optional
from uuid import uuid4


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count


def _resolve_path(row: dict, path: str):
    """Follow a PostgREST json path like "coordinates->lat"."""
    value: Any = row
    for key in path.split("->"):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _condition(expression: str):
    """Parse one "column.op.value" condition of an or_() filter."""
    path, op, raw = expression.split(".", 2)
    if op == "is" and raw == "null":
        return lambda row: _resolve_path(row, path) is None
    if op == "eq":
        return lambda row: str(_resolve_path(row, path)) == raw
    raise ValueError(f"Unsupported filter operator in mock: {op}")


class MockSupabaseQuery:
    """Chainable query builder evaluated against the mock's table rows."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._filters = []
        self._action = "select"
        self._payload = None
        self._count_mode = None
        self._order = None
        self._limit = None
        self._is_single = False

    # Actions

    def select(self, *args, count: Optional[str] = None, **kwargs):
        self._action = "select"
        self._count_mode = count
        return self

    def insert(self, data):
        self._action = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._action = "update"
        self._payload = data
        return self

    def delete(self):
        self._action = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column, value):
        if value in (None, "null"):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def or_(self, filters: str):
        conditions = [_condition(part.strip()) for part in filters.split(",")]
        self._filters.append(lambda row: any(cond(row) for cond in conditions))
        return self

    # Modifiers

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        return self

    def single(self):
        self._is_single = True
        return self

    def _matching(self) -> list[dict]:
        rows = self._client.rows(self._table)
        return [row for row in rows if all(f(row) for f in self._filters)]

    def execute(self) -> MockSupabaseResponse:
        self._client.check_failure(self._table, self._action)

        if self._action == "insert":
            records = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self._client.add_row(self._table, record) for record in records]
            return MockSupabaseResponse(data=inserted, count=len(inserted))

        matching = self._matching()

        if self._action == "update":
            now = datetime.utcnow().isoformat() + "Z"
            for row in matching:
                row.update(self._payload)
                row["updated_at"] = now
            return MockSupabaseResponse(data=[dict(row) for row in matching], count=len(matching))

        if self._action == "delete":
            self._client.remove_rows(self._table, matching)
            return MockSupabaseResponse(data=[dict(row) for row in matching], count=len(matching))

        if self._order is not None:
            column, desc = self._order
            matching = sorted(matching, key=lambda row: row.get(column) or 0, reverse=desc)

        count = len(matching) if self._count_mode == "exact" else None

        if self._limit is not None:
            matching = matching[:self._limit]

        data = [dict(row) for row in matching]
        if self._is_single:
            return MockSupabaseResponse(data=data[0] if data else None, count=count)
        return MockSupabaseResponse(data=data, count=count)


class MockSupabaseTable:
    """Entry point for queries on one table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._client, self._name)

    def select(self, *args, **kwargs):
        return self._query().select(*args, **kwargs)

    def insert(self, data):
        return self._query().insert(data)

    def update(self, data):
        return self._query().update(data)

    def delete(self):
        return self._query().delete()


class MockSupabaseAuth:
    """Accepts the tokens registered with add_token()."""

    def __init__(self):
        self._tokens: dict[str, str] = {}

    def add_token(self, token: str, user_id: str) -> None:
        self._tokens[token] = user_id

    def get_user(self, token: str):
        if token not in self._tokens:
            raise Exception("Invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self._tokens[token]))


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: set[tuple[str, str]] = set()
        self.auth = MockSupabaseAuth()

    def set_table_data(self, table_name: str, data: list):
        """Replace the rows of a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def add_row(self, table_name: str, record: dict) -> dict:
        now = datetime.utcnow().isoformat() + "Z"
        row = {"id": str(uuid4()), "created_at": now, "updated_at": now, **record}
        self.rows(table_name).append(row)
        return dict(row)

    def remove_rows(self, table_name: str, rows: list[dict]) -> None:
        ids = {id(row) for row in rows}
        self._tables[table_name] = [row for row in self.rows(table_name) if id(row) not in ids]

    def fail_on(self, table_name: str, action: str) -> None:
        """Make every query of this kind on a table raise."""
        self._failures.add((table_name, action))

    def check_failure(self, table_name: str, action: str) -> None:
        if (table_name, action) in self._failures:
            raise Exception(f"mock {action} on {table_name} failed")

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)


class RecordingScheduler:
    """Continuation scheduler that only records the lists it was asked to run."""

    def __init__(self, fail: bool = False):
        self.scheduled: list[str] = []
        self.fail = fail

    def schedule(self, list_id: str) -> Optional[str]:
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.scheduled.append(list_id)
        return f"job-{len(self.scheduled)}"


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create an in-memory Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("addresses", [
                {"id": "a1", "list_id": "list-1", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


SERVICE_SINGLETONS = [
    ("services.import_list_service", "_import_list_service"),
    ("services.address_service", "_address_service"),
    ("services.column_mapping_service", "_column_mapping_service"),
    ("services.address_import_service", "_address_import_service"),
    ("services.geocoding_service", "_geocoding_service"),
    ("services.geocode_batch_service", "_geocode_batch_service"),
]


def _reset_singletons() -> None:
    import importlib

    for module_name, attribute in SERVICE_SINGLETONS:
        setattr(importlib.import_module(module_name), attribute, None)


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with the mock.

    Any code using get_supabase_client() gets the mock. Cached service
    instances are dropped so they pick it up.
    """
    _reset_singletons()
    targets = [
        "config.database.get_supabase_client",
        "services.import_list_service.get_supabase_client",
        "services.address_service.get_supabase_client",
        "services.column_mapping_service.get_supabase_client",
        "services.address_import_service.get_supabase_client",
        "services.geocode_batch_service.get_supabase_client",
        "routes.dependencies.get_supabase_client",
    ]
    with ExitStack() as stack:
        for target in targets:
            stack.enter_context(patch(target, return_value=mock_supabase))
        yield mock_supabase
    _reset_singletons()


# ===================
# API TEST CLIENT
# ===================

AUTH_TOKEN = "valid-token"
AUTH_USER_ID = "user-1"


@pytest.fixture
def auth_headers(mock_supabase) -> dict:
    """Bearer header accepted by the mock's auth."""
    mock_supabase.auth.add_token(AUTH_TOKEN, AUTH_USER_ID)
    return {"Authorization": f"Bearer {AUTH_TOKEN}"}


@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    The startup health check runs against the mock as well.
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("main.check_connection", return_value={
        "status": "healthy",
        "lists_count": 0,
        "addresses_count": 0,
    }):
        yield TestClient(app)
