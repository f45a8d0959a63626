"""
Pytest configuration.

Adds the project root to the Python path so that tests can import the domain,
repositories, services and api packages, and provides an in-memory stand-in
for the Supabase client used by the repository modules.
"""

import sys
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class FakeResponse:
    def __init__(self, data: Any = None, count: Optional[int] = None, error: Any = None) -> None:
        self.data = data
        self.count = count
        self.error = error


class FakeQuery:
    """Chainable subset of the postgrest query builder."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._action = "select"
        self._payload: Any = None
        self._filters: List[tuple] = []
        self._order: Optional[tuple] = None
        self._range: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._count = False

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._action = "select"
        self._count = count == "exact"
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self._action = "insert"
        self._payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._action = "update"
        self._payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self._limit = size
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> FakeResponse:
        with self._client.lock:
            rows = self._client.tables.setdefault(self._table, [])

            if self._action == "insert":
                payloads = self._payload if isinstance(self._payload, list) else [self._payload]
                rows.extend(deepcopy(payloads))
                return FakeResponse(data=deepcopy(payloads))

            matched = [row for row in rows if self._matches(row)]

            if self._action == "update":
                for row in matched:
                    row.update(deepcopy(self._payload))
                return FakeResponse(data=deepcopy(matched))

            if self._action == "delete":
                self._client.tables[self._table] = [row for row in rows if not self._matches(row)]
                return FakeResponse(data=deepcopy(matched))

            total = len(matched)
            if self._order is not None:
                column, desc = self._order
                matched.sort(key=lambda row: (row.get(column) is None, row.get(column) or 0), reverse=desc)
            if self._range is not None:
                start, end = self._range
                matched = matched[start:end + 1]
            if self._limit is not None:
                matched = matched[:self._limit]

            return FakeResponse(data=deepcopy(matched), count=total if self._count else None)


class FakeRpc:
    def __init__(self, client: "FakeSupabase", name: str, params: Dict[str, Any]) -> None:
        self._client = client
        self._name = name
        self._params = params

    def execute(self) -> FakeResponse:
        if self._client.rpc_barrier is not None:
            self._client.rpc_barrier.wait(timeout=5)

        assert self._name == "increment_discount_usage"
        discount_id = self._params["p_discount_id"]

        # Same conditional increment as the SQL function, serialized by the lock
        with self._client.lock:
            for row in self._client.tables.get("discounts", []):
                if row["discount_id"] != discount_id:
                    continue
                limit = row.get("usage_limit")
                if limit is not None and row["usage_count"] >= limit:
                    return FakeResponse(data={
                        "success": False,
                        "error": "USAGE_LIMIT_REACHED",
                        "message": "Discount has reached usage limit",
                    })
                row["usage_count"] += 1
                return FakeResponse(data={"success": True, "usage_count": row["usage_count"]})

        return FakeResponse(data={"success": False, "error": "NOT_FOUND", "message": "Discount not found"})


class FakeSupabase:
    """In-memory tables keyed by name, plus the increment_discount_usage RPC."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.lock = threading.Lock()
        self.rpc_barrier: Optional[threading.Barrier] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)


@pytest.fixture
def fake_supabase(monkeypatch: pytest.MonkeyPatch) -> FakeSupabase:
    """Route every repository call to a fresh in-memory database."""

    client = FakeSupabase()
    monkeypatch.setattr("repositories.discount_repository.get_supabase", lambda: client)
    monkeypatch.setattr("repositories.usage_repository.get_supabase", lambda: client)
    return client
