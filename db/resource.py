"""
db/resource.py
--------------
Transactional resources: the connection-like handle an insert runs on.

`TransactionalResource` and `ResourceProvider` are the protocols the
repository layer depends on. `PgResource` implements the resource on top of
a psycopg2 connection and translates driver errors into the persistence
error taxonomy.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

import psycopg2

from db.errors import ExecutionError, ResourceError, StatementError


@dataclass(frozen=True)
class InsertStatement:
    """
    A bound insert statement.

    The SQL must ask the backend to report the generated key
    (``RETURNING id`` on PostgreSQL).
    """
    sql: str
    params: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.sql or not self.sql.strip():
            raise StatementError("Insert statement has no SQL")
        if "returning" not in self.sql.lower():
            raise StatementError(
                "Insert statement does not request the generated key (missing RETURNING)"
            )


@dataclass(frozen=True)
class Savepoint:
    """Marker for a savepoint inside one transaction."""
    name: str


class TransactionalResource(Protocol):
    """An exclusively owned handle that supports explicit transactions."""

    def set_autocommit(self, flag: bool) -> None:
        ...

    def execute(self, statement: InsertStatement) -> list[tuple]:
        """Execute an insert and return the generated-key rows."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        ...

    def create_savepoint(self) -> Savepoint:
        ...

    def release_savepoint(self, savepoint: Savepoint) -> None:
        ...

    def release(self) -> None:
        ...


class ResourceProvider(Protocol):
    """Hands out one transactional resource per call."""

    def acquire(self) -> TransactionalResource:
        ...


class PgResource:
    """
    TransactionalResource over a psycopg2 connection.

    Args:
        conn: An open psycopg2 connection, owned by this resource until released.
        on_release: Called with the connection once, when the resource is released
            (usually returns it to a pool).
    """

    def __init__(self, conn, on_release: Callable[[Any], None]):
        self._conn = conn
        self._on_release = on_release
        self._released = False
        self._savepoint_seq = 0

    @property
    def connection(self):
        self._ensure_open()
        return self._conn

    def set_autocommit(self, flag: bool) -> None:
        self._ensure_open()
        try:
            self._conn.autocommit = flag
        except psycopg2.Error as e:
            raise ExecutionError(f"Failed to set autocommit={flag}: {e}") from e

    def execute(self, statement: InsertStatement) -> list[tuple]:
        self._ensure_open()
        try:
            with self._conn.cursor() as cur:
                cur.execute(statement.sql, tuple(statement.params))
                return cur.fetchall() if cur.description else []
        except psycopg2.Error as e:
            raise ExecutionError(f"Insert failed: {e}") from e

    def commit(self) -> None:
        self._ensure_open()
        try:
            self._conn.commit()
        except psycopg2.Error as e:
            raise ExecutionError(f"Commit failed: {e}") from e

    def rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        self._ensure_open()
        try:
            if savepoint is None:
                self._conn.rollback()
            else:
                with self._conn.cursor() as cur:
                    cur.execute(f"ROLLBACK TO SAVEPOINT {savepoint.name};")
        except psycopg2.Error as e:
            raise ExecutionError(f"Rollback failed: {e}") from e

    def create_savepoint(self) -> Savepoint:
        self._ensure_open()
        self._savepoint_seq += 1
        savepoint = Savepoint(name=f"sp_{self._savepoint_seq}")
        try:
            with self._conn.cursor() as cur:
                cur.execute(f"SAVEPOINT {savepoint.name};")
        except psycopg2.Error as e:
            raise ExecutionError(f"Failed to create savepoint {savepoint.name}: {e}") from e
        return savepoint

    def release_savepoint(self, savepoint: Savepoint) -> None:
        self._ensure_open()
        try:
            with self._conn.cursor() as cur:
                cur.execute(f"RELEASE SAVEPOINT {savepoint.name};")
        except psycopg2.Error as e:
            raise ExecutionError(f"Failed to release savepoint {savepoint.name}: {e}") from e

    def release(self) -> None:
        if self._released:
            raise ResourceError("Resource already released")
        self._released = True
        try:
            self._on_release(self._conn)
        except Exception as e:
            raise ResourceError(f"Failed to release connection: {e}") from e

    def _ensure_open(self) -> None:
        if self._released:
            raise ResourceError("Resource used after release")
