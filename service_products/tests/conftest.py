"""
Shared fixtures for Products Service tests.
"""

import fnmatch
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from shared.errors import CacheError
from shared.metrics import MetricsCollector
from service_products.app.repository import (
    ProductsRepository, SELECT_ALL, SELECT_BY_ID, INSERT, DELETE_BY_ID
)


class FakeRecordStore:
    """In-memory PRODUCTS table answering the repository's statements."""

    def __init__(self):
        self.rows: Dict[int, Dict[str, Any]] = {}
        self.next_id = 1
        self.queries: List[str] = []
        self.started = False
        self.hide_inserts = False

    def seed(self, name: str, price: float, description: str) -> int:
        product_id = self.next_id
        self.next_id += 1
        self.rows[product_id] = {
            "id": product_id,
            "name": name,
            "price": Decimal(str(price)),
            "description": description,
        }
        return product_id

    def remove_row_directly(self, product_id: int):
        """Delete a row without going through the repository."""
        del self.rows[product_id]

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def health_check(self) -> bool:
        return self.started

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        self.queries.append(query)
        assert query == SELECT_ALL, query
        return [dict(self.rows[key]) for key in sorted(self.rows)]

    async def fetchrow(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        self.queries.append(query)
        assert query == SELECT_BY_ID, query
        row = self.rows.get(args[0])
        return dict(row) if row is not None else None

    async def fetchval(self, query: str, *args: Any) -> Any:
        self.queries.append(query)
        assert query == INSERT, query
        name, price, description = args
        product_id = self.seed(name, price, description)
        if self.hide_inserts:
            # Simulates a replica that has not seen the insert yet
            del self.rows[product_id]
        return product_id

    async def execute(self, query: str, *args: Any) -> int:
        self.queries.append(query)
        if query == DELETE_BY_ID:
            return 1 if self.rows.pop(args[0], None) is not None else 0

        assert query.startswith("UPDATE PRODUCTS SET "), query
        assignments = re.findall(r"(\w+) = \$(\d+)", query)
        *changes, (_, id_position) = assignments
        row = self.rows.get(args[int(id_position) - 1])
        if row is None:
            return 0
        for column, position in changes:
            row[column.lower()] = args[int(position) - 1]
        return 1


class FakeHashCache:
    """In-memory Redis hash store."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.strings: Dict[str, str] = {}
        self.calls: List[str] = []
        self.started = False
        self.fail = False

    def _call(self, name: str):
        self.calls.append(name)
        if self.fail:
            raise CacheError("Connection refused")

    def _check_type(self, key: str):
        if key in self.strings:
            raise CacheError("WRONGTYPE Operation against a key holding the wrong kind of value", {"key": key})

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def health_check(self) -> bool:
        return self.started and not self.fail

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._call("hgetall")
        self._check_type(key)
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, mapping) -> None:
        self._call("hset")
        self._check_type(key)
        self.hashes.setdefault(key, {}).update(mapping)

    async def delete(self, *keys: str) -> int:
        self._call("delete")
        removed = 0
        for key in keys:
            if self.hashes.pop(key, None) is not None or self.strings.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys(self, pattern: str) -> List[str]:
        self._call("keys")
        return [key for key in [*self.hashes, *self.strings] if fnmatch.fnmatchcase(key, pattern)]


@pytest.fixture
def store():
    """In-memory record store."""
    return FakeRecordStore()


@pytest.fixture
def cache():
    """In-memory hash cache."""
    return FakeHashCache()


@pytest.fixture
def metrics():
    """Metrics collector on an isolated registry."""
    return MetricsCollector("products", CollectorRegistry())


@pytest.fixture
def repository(store, cache, metrics):
    """Repository wired to in-memory substitutes."""
    return ProductsRepository(store, cache, metrics=metrics)
