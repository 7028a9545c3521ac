"""
db/errors.py
------------
Error taxonomy for the insert protocol.

    PersistenceError
    ├── ResourceError        cannot obtain / release a transactional resource
    ├── StatementError       missing or invalid insert statement mapping
    ├── ExecutionError       backend rejected a statement or transaction call
    │   └── KeyRetrievalError    backend reported no (or more than one) generated key
    └── InsertError          wraps any failure after a resource was acquired
"""

from typing import Optional


class PersistenceError(Exception):
    """Base class for every error raised by the persistence layer."""


class ResourceError(PersistenceError):
    """The transactional resource could not be obtained or released."""


class StatementError(PersistenceError):
    """No usable insert statement could be built for an entity."""


class ExecutionError(PersistenceError):
    """The backend failed to execute a statement, commit, rollback or savepoint."""


class KeyRetrievalError(ExecutionError):
    """The backend did not report exactly one generated key for an insert."""


class InsertError(PersistenceError):
    """
    Raised by EntityRepository.insert when any step after acquisition fails.

    Attributes:
        cause: The original exception (also chained as ``__cause__``).
        policy: Name of the rollback policy that was active.
        state: Last state the insert reached before failing.
        root_committed: True only when the savepoint policy committed the
            root row without its children.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException,
        policy: Optional[str] = None,
        state: Optional[str] = None,
        root_committed: bool = False,
    ):
        super().__init__(message)
        self.cause = cause
        self.policy = policy
        self.state = state
        self.root_committed = root_committed

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}: {type(self.cause).__name__}: {self.cause}"
