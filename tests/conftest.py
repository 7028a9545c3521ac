"""
Shared fixtures: an in-memory backend that models committed rows, pending
rows and savepoints, so tests can assert what actually survived a call.
"""

import threading
from collections import defaultdict
from typing import Callable, Optional
from unittest.mock import Mock

import pytest

from db.errors import ExecutionError, ResourceError
from db.resource import InsertStatement, Savepoint


class FakeBackend:
    """Committed table contents plus a key sequence shared by all resources."""

    def __init__(self, first_key: int = 1):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.next_key = first_key
        self.fail_when: Optional[Callable[[str, tuple], bool]] = None
        self.resources: list["FakeResource"] = []
        self.lock = threading.Lock()

    def rows(self, table: str) -> list[dict]:
        return list(self.tables[table])


class FakeResource:
    """TransactionalResource that records every call it receives."""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.calls: list[str] = []
        self.pending: list[tuple[str, dict]] = []
        self.savepoints: dict[str, int] = {}
        self.autocommit = True
        self.release_count = 0

    def set_autocommit(self, flag: bool) -> None:
        self.calls.append("set_autocommit")
        self.autocommit = flag

    def execute(self, statement: InsertStatement) -> list[tuple]:
        self.calls.append("execute")
        table = statement.sql.split()[2]
        params = tuple(statement.params)
        if self.backend.fail_when and self.backend.fail_when(table, params):
            raise ExecutionError(f"insert into {table} rejected")
        with self.backend.lock:
            key = self.backend.next_key
            self.backend.next_key += 1
        self.pending.append((table, {"id": key, "params": params}))
        return [(key,)]

    def commit(self) -> None:
        self.calls.append("commit")
        with self.backend.lock:
            for table, row in self.pending:
                self.backend.tables[table].append(row)
        self.pending = []
        self.savepoints = {}

    def rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        if savepoint is None:
            self.calls.append("rollback")
            self.pending = []
            self.savepoints = {}
        else:
            self.calls.append("rollback_to_savepoint")
            self.pending = self.pending[: self.savepoints[savepoint.name]]

    def create_savepoint(self) -> Savepoint:
        self.calls.append("create_savepoint")
        savepoint = Savepoint(name=f"sp_{len(self.savepoints) + 1}")
        self.savepoints[savepoint.name] = len(self.pending)
        return savepoint

    def release_savepoint(self, savepoint: Savepoint) -> None:
        self.calls.append("release_savepoint")
        self.savepoints.pop(savepoint.name)

    def release(self) -> None:
        self.calls.append("release")
        self.release_count += 1


class FakeProvider:
    """ResourceProvider over a FakeBackend."""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.unavailable = False

    def acquire(self) -> FakeResource:
        if self.unavailable:
            raise ResourceError("pool exhausted")
        resource = FakeResource(self.backend)
        with self.backend.lock:
            self.backend.resources.append(resource)
        return resource


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def provider(backend):
    return FakeProvider(backend)


@pytest.fixture
def mock_resource():
    """A Mock resource that reports generated key 42."""
    resource = Mock()
    resource.execute.return_value = [(42,)]
    return resource


@pytest.fixture
def mock_provider(mock_resource):
    provider = Mock()
    provider.acquire.return_value = mock_resource
    return provider
