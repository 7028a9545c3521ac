"""
repositories/entity_repo.py
----------------------------
Generic hierarchical insert: writes a root entity and everything it owns as
one transaction, recovering the backend-generated key for every row.

Per-entity-type behaviour is injected through an `EntityMapping`:
    - build_statement(resource, entity, parent_id) -> InsertStatement
    - insert_children(resource, entity) -> None   (default: no children)

Two rollback policies are supported:
    FULL       any failure undoes the whole transaction.
    SAVEPOINT  a savepoint is taken once the root row is keyed; a failure
               while inserting children only rolls back to it, and the
               configured orphan resolver decides whether the childless
               root row is committed or discarded.
"""

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from db.errors import (
    InsertError,
    KeyRetrievalError,
    PersistenceError,
    ResourceError,
    StatementError,
)
from db.resource import InsertStatement, ResourceProvider, Savepoint, TransactionalResource
from models.base import Identifiable
from utils.logger import null_logger

# Parent id used for entities that have no parent.
NO_PARENT = 0


class RollbackPolicy(Enum):
    FULL = "full"
    SAVEPOINT = "savepoint"


class OrphanDecision(Enum):
    """What happens to a root row whose children were rolled back to the savepoint."""
    COMMIT = "commit"
    DISCARD = "discard"


class InsertState(Enum):
    INIT = "init"
    CONNECTED = "connected"
    STATEMENT_BOUND = "statement_bound"
    EXECUTED = "executed"
    KEYED = "keyed"
    SAVEPOINT_SET = "savepoint_set"
    CHILDREN_INSERTED = "children_inserted"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ROLLED_BACK_TO_SAVEPOINT = "rolled_back_to_savepoint"


StatementBuilder = Callable[[TransactionalResource, Any, int], InsertStatement]
ChildInserter = Callable[[TransactionalResource, Any], None]
OrphanResolver = Callable[[Any, BaseException], OrphanDecision]


def no_children(resource: TransactionalResource, entity: Any) -> None:
    """Default child inserter: the entity owns nothing."""
    return None


@dataclass(frozen=True)
class EntityMapping:
    """
    Per-entity-type insert hooks.

    Attributes:
        name: Human-readable entity name used in logs and errors.
        build_statement: Builds the bound insert for an entity and parent id.
        insert_children: Inserts the entity's owned children on the same resource.
    """
    name: str
    build_statement: Optional[StatementBuilder]
    insert_children: ChildInserter = no_children


@dataclass
class _Progress:
    """Per-call bookkeeping. Lives only for the duration of one insert()."""
    state: InsertState = InsertState.INIT
    savepoint: Optional[Savepoint] = None
    keyed: list = field(default_factory=list)


# Entities keyed inside the transaction currently running on this thread/context.
_current_progress: ContextVar[Optional[_Progress]] = ContextVar("_current_progress", default=None)


class EntityRepository:
    """
    Inserts one entity type, cascading to its children in the same transaction.

    Args:
        provider: Supplies one transactional resource per insert() call.
        mapping: Statement builder and child inserter for the entity type.
        policy: Rollback policy applied when a step fails.
        orphan_resolver: Required with the SAVEPOINT policy. Called with the root
            entity and the original error after a savepoint rollback; returns
            an OrphanDecision.
        logger: Diagnostics sink. Defaults to a logger that discards everything.
    """

    def __init__(
        self,
        provider: Optional[ResourceProvider],
        mapping: EntityMapping,
        policy: RollbackPolicy = RollbackPolicy.FULL,
        orphan_resolver: Optional[OrphanResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if policy is RollbackPolicy.SAVEPOINT and orphan_resolver is None:
            raise ValueError(
                "The savepoint policy needs an orphan_resolver to decide the fate of a "
                "root row whose children failed"
            )
        self.provider = provider
        self.mapping = mapping
        self.policy = policy
        self.orphan_resolver = orphan_resolver
        self.logger = logger or null_logger(__name__)

    # ── PUBLIC API ────────────────────────────────────────

    def insert(self, entity: Identifiable, parent_id: int = NO_PARENT) -> Identifiable:
        """
        Insert `entity` and its children as one transaction.

        Args:
            entity: Entity without an id yet.
            parent_id: Foreign key of the owning row, or NO_PARENT.

        Returns:
            The same entity with its id set.

        Raises:
            StatementError: Repository not configured or entity not insertable.
                Nothing was acquired.
            ResourceError: No resource could be acquired (nothing attempted), or
                the resource could not be released after a successful commit.
            InsertError: Any later step failed; the transaction was rolled back
                according to the policy and `error.cause` holds the original error.
        """
        self._check_ready(entity)
        try:
            resource = self.provider.acquire()
        except Exception as e:
            self.logger.error(f"Failed to acquire resource for {self.mapping.name} insert: {e}", exc_info=e)
            raise

        progress = _Progress(state=InsertState.CONNECTED)
        token = _current_progress.set(progress)
        succeeded = False
        try:
            try:
                self._run(resource, entity, parent_id, progress)
            except Exception as e:
                raise self._recover(resource, entity, progress, e) from e
            succeeded = True
        finally:
            _current_progress.reset(token)
            self._release(resource, quiet=not succeeded)

        self.logger.info(f"Inserted {self.mapping.name} #{entity.get_id()} (parent {parent_id})")
        return entity

    def insert_within(
        self, resource: TransactionalResource, entity: Identifiable, parent_id: int = NO_PARENT
    ) -> Identifiable:
        """
        Insert `entity` and its children on a resource owned by the caller.

        Used from child inserters. Never commits, rolls back or releases;
        errors propagate to the insert() call that owns the transaction.
        """
        self._check_entity(entity)
        self._insert_row(resource, entity, parent_id)
        self.mapping.insert_children(resource, entity)
        return entity

    def insert_all(
        self, resource: TransactionalResource, entities: Iterable[Identifiable], parent_id: int
    ) -> None:
        """Insert each entity under the same parent, in order, on the caller's resource."""
        for entity in entities:
            self.insert_within(resource, entity, parent_id)

    # ── PROTOCOL STEPS ────────────────────────────────────

    def _run(self, resource, entity, parent_id: int, progress: _Progress) -> None:
        resource.set_autocommit(False)
        self._insert_row(resource, entity, parent_id, progress)

        if self.policy is RollbackPolicy.SAVEPOINT:
            progress.savepoint = resource.create_savepoint()
            progress.state = InsertState.SAVEPOINT_SET

        self.mapping.insert_children(resource, entity)
        progress.state = InsertState.CHILDREN_INSERTED

        if progress.savepoint is not None:
            resource.release_savepoint(progress.savepoint)
        resource.commit()
        progress.state = InsertState.COMMITTED

    def _insert_row(self, resource, entity, parent_id: int, progress: Optional[_Progress] = None) -> None:
        statement = self._build_statement(resource, entity, parent_id)
        if progress is not None:
            progress.state = InsertState.STATEMENT_BOUND

        rows = resource.execute(statement)
        if progress is not None:
            progress.state = InsertState.EXECUTED

        key = self._extract_key(rows)
        entity.set_id(key)
        owner = _current_progress.get()
        if owner is not None:
            owner.keyed.append(entity)
        if progress is not None:
            progress.state = InsertState.KEYED

    def _build_statement(self, resource, entity, parent_id: int) -> InsertStatement:
        builder = self.mapping.build_statement
        if builder is None:
            raise StatementError(f"No insert statement mapped for {self.mapping.name}")
        try:
            statement = builder(resource, entity, parent_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise StatementError(f"Failed to build insert for {self.mapping.name}: {e}") from e
        if statement is None:
            raise StatementError(f"Invalid SQL statement for {self.mapping.name}")
        return statement

    def _extract_key(self, rows) -> int:
        rows = list(rows or [])
        if len(rows) != 1:
            raise KeyRetrievalError(
                f"Expected exactly one generated key for {self.mapping.name}, got {len(rows)}"
            )
        row = rows[0]
        if not row or row[0] is None:
            raise KeyRetrievalError(f"Backend reported no generated key for {self.mapping.name}")
        return int(row[0])

    # ── FAILURE HANDLING ──────────────────────────────────

    def _recover(self, resource, entity, progress: _Progress, error: Exception) -> InsertError:
        failed_at = progress.state
        self.logger.error(
            f"Failed to insert {self.mapping.name} at state {failed_at.name}: {error}",
            exc_info=error,
        )

        root_committed = False
        if failed_at is InsertState.SAVEPOINT_SET:
            root_committed = self._recover_to_savepoint(resource, entity, progress, error)
        else:
            self._rollback(resource)
            progress.state = InsertState.ROLLED_BACK

        # Rows that did not survive must not leave their keys behind.
        kept = 1 if root_committed else 0
        for keyed in progress.keyed[kept:]:
            keyed.set_id(None)

        return InsertError(
            f"Failed to insert {self.mapping.name}",
            error,
            policy=self.policy.value,
            state=failed_at.name,
            root_committed=root_committed,
        )

    def _recover_to_savepoint(self, resource, entity, progress: _Progress, error: Exception) -> bool:
        """Roll back the children, then let the resolver settle the root row. Returns True if committed."""
        try:
            resource.rollback(progress.savepoint)
            progress.state = InsertState.ROLLED_BACK_TO_SAVEPOINT
        except Exception as e:
            self.logger.error(f"Failed to roll back {self.mapping.name} to savepoint: {e}", exc_info=e)
            self._rollback(resource)
            progress.state = InsertState.ROLLED_BACK
            return False

        try:
            decision = OrphanDecision(self.orphan_resolver(entity, error))
        except Exception as e:
            self.logger.error(f"Orphan resolver failed for {self.mapping.name}: {e}", exc_info=e)
            decision = OrphanDecision.DISCARD

        if decision is OrphanDecision.COMMIT:
            try:
                resource.commit()
                progress.state = InsertState.COMMITTED
                self.logger.warning(
                    f"Committed {self.mapping.name} #{entity.get_id()} without its children"
                )
                return True
            except Exception as e:
                self.logger.error(f"Failed to commit orphaned {self.mapping.name}: {e}", exc_info=e)

        self._rollback(resource)
        progress.state = InsertState.ROLLED_BACK
        return False

    def _rollback(self, resource) -> None:
        try:
            resource.rollback()
        except Exception as e:
            self.logger.error(f"Failed to roll back {self.mapping.name} insert: {e}", exc_info=e)

    def _release(self, resource, quiet: bool) -> None:
        try:
            resource.release()
        except Exception as e:
            self.logger.error(f"Failed to release resource after {self.mapping.name} insert: {e}", exc_info=e)
            if quiet:
                return
            if isinstance(e, ResourceError):
                raise
            raise ResourceError(f"Failed to release resource: {e}") from e

    # ── PRECONDITIONS ─────────────────────────────────────

    def _check_ready(self, entity) -> None:
        try:
            if self.provider is None:
                raise StatementError(f"No resource provider configured for {self.mapping.name}")
            if self.mapping.build_statement is None:
                raise StatementError(f"No insert statement mapped for {self.mapping.name}")
            self._check_entity(entity)
        except StatementError as e:
            self.logger.error(str(e))
            raise

    def _check_entity(self, entity) -> None:
        if entity is None:
            raise StatementError(f"Cannot insert a null {self.mapping.name}")
        if not isinstance(entity, Identifiable):
            raise StatementError(f"{type(entity).__name__} does not expose get_id()/set_id()")
        if entity.get_id() is not None:
            raise StatementError(f"{self.mapping.name} #{entity.get_id()} is already persisted")
