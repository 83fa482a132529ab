"""
Shared test fixtures.

The Supabase mock keeps rows in memory and applies the filters services
use (eq, in_, is_, ilike, overlaps, lt, ...), so a query only returns
the rows it would return against the real table.
"""

import os
import re
import sys
from pathlib import Path

# Settings are loaded at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "development")

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import copy
import pytest
from contextlib import ExitStack
from datetime import datetime, timezone
from unittest.mock import patch
from typing import Callable, Generator, Optional
from uuid import uuid4

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        if count is not None:
            self.count = count
        else:
            self.count = len(self.data) if isinstance(self.data, list) else (1 if self.data else 0)


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _comparable(value):
    if hasattr(value, "value"):
        return value.value
    return value


class MockSupabaseQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload = None
        self._on_conflict: Optional[str] = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._is_single = False

    # operations

    def select(self, *args, **kwargs):
        self._op = "select"
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None, **kwargs):
        self._op = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def delete(self):
        self._op = "delete"
        return self

    # filters

    def eq(self, column, value):
        value = _comparable(value)
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        value = _comparable(value)
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = [_comparable(v) for v in values]
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        if value in ("null", None):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) is not None)
        return self

    def _compare(self, column, value, op):
        value = _comparable(value)
        self._filters.append(
            lambda row: row.get(column) is not None and op(row.get(column), value)
        )
        return self

    def lt(self, column, value):
        return self._compare(column, value, lambda a, b: a < b)

    def lte(self, column, value):
        return self._compare(column, value, lambda a, b: a <= b)

    def gt(self, column, value):
        return self._compare(column, value, lambda a, b: a > b)

    def gte(self, column, value):
        return self._compare(column, value, lambda a, b: a >= b)

    def ilike(self, column, pattern):
        regex = _like_to_regex(pattern)
        self._filters.append(
            lambda row: row.get(column) is not None and regex.fullmatch(str(row.get(column))) is not None
        )
        return self

    def overlaps(self, column, values):
        wanted = set(values)
        self._filters.append(lambda row: bool(set(row.get(column) or []) & wanted))
        return self

    # shaping

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._is_single = True
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._client._check_failure(self._table, self._op)
        rows = self._client._tables.setdefault(self._table, [])

        if self._op == "insert":
            return MockSupabaseResponse(self._client._insert(self._table, self._payload))

        if self._op == "upsert":
            return MockSupabaseResponse(self._client._upsert(self._table, self._payload, self._on_conflict))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(updated)

        if self._op == "delete":
            removed = [row for row in rows if self._matches(row)]
            self._client._tables[self._table] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(copy.deepcopy(removed))

        result = [copy.deepcopy(row) for row in rows if self._matches(row)]
        for column, desc in reversed(self._order):
            result.sort(
                key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else 0),
                reverse=desc
            )
        total = len(result)

        if self._range:
            start, end = self._range
            result = result[start:end + 1]
        if self._limit is not None:
            result = result[:self._limit]

        if self._is_single:
            return MockSupabaseResponse(result[0] if result else None, count=total)
        return MockSupabaseResponse(result, count=total)


class MockRpcCall:
    def __init__(self, handler: Callable, params: dict):
        self._handler = handler
        self._params = params

    def execute(self) -> MockSupabaseResponse:
        return MockSupabaseResponse(self._handler(**self._params))


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._rpcs: dict[str, Callable] = {}
        self._failures: set[tuple[str, Optional[str]]] = set()
        self.rpc_calls: list[tuple[str, dict]] = []

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Replace the rows of a table."""
        self._tables[table_name] = copy.deepcopy(data)

    def get_table_data(self, table_name: str) -> list:
        return self._tables.get(table_name, [])

    def register_rpc(self, name: str, handler: Callable):
        """Make db.rpc(name, params) call handler(**params)."""
        self._rpcs[name] = handler

    def fail(self, table_name: str, op: Optional[str] = None):
        """Make queries on a table raise (only `op` if given)."""
        self._failures.add((table_name, op))

    def recover(self, table_name: str, op: Optional[str] = None):
        """Undo a matching fail() call."""
        self._failures.discard((table_name, op))

    def _check_failure(self, table: str, op: str):
        if (table, None) in self._failures or (table, op) in self._failures:
            raise Exception(f"simulated {op} failure on {table}")

    def _insert(self, table: str, data) -> list:
        items = data if isinstance(data, list) else [data]
        inserted = []
        for item in items:
            row = copy.deepcopy(item)
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            self._tables.setdefault(table, []).append(row)
            inserted.append(copy.deepcopy(row))
        return inserted

    def _upsert(self, table: str, data, on_conflict: Optional[str]) -> list:
        keys = [k.strip() for k in on_conflict.split(",")] if on_conflict else ["id"]
        items = data if isinstance(data, list) else [data]
        result = []
        for item in items:
            existing = next(
                (r for r in self._tables.setdefault(table, [])
                 if all(r.get(k) == item.get(k) for k in keys)),
                None
            )
            if existing:
                existing.update(copy.deepcopy(item))
                result.append(copy.deepcopy(existing))
            else:
                result.extend(self._insert(table, item))
        return result

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def rpc(self, name: str, params: dict = None) -> MockRpcCall:
        self.rpc_calls.append((name, params or {}))
        if name not in self._rpcs:
            raise Exception(f"function {name} does not exist")
        return MockRpcCall(self._rpcs[name], params or {})


# ===================
# FIXTURES
# ===================

PATCHED_MODULES = [
    "config.database",
    "services.spec_rule_repository",
    "services.product_matching_service",
    "services.staging_service",
    "services.batch_validator_service",
    "services.sku_service",
    "services.commit_service",
    "services.cleanup_service",
]


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "name": "Samsung Galaxy A54", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any service calling get_supabase_client() gets the mock
    """
    with ExitStack() as stack:
        for module in PATCHED_MODULES:
            stack.enter_context(
                patch(f"{module}.get_supabase_client", return_value=mock_supabase)
            )
        stack.enter_context(
            patch("services.cleanup_service.get_admin_client", return_value=None)
        )
        yield mock_supabase


@pytest.fixture
def shop() -> dict:
    return {"id": "shop-1", "name": "Tech Hub Lilongwe"}


@pytest.fixture
def seeded_shop(mock_supabase, shop) -> dict:
    """Shop row present in the shops table."""
    mock_supabase.set_table_data("shops", [shop])
    return shop
