"""
models/base.py
--------------
The identifiable-entity capability shared by every persisted model.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Identifiable(Protocol):
    """Anything with a settable surrogate integer id."""

    def get_id(self) -> Optional[int]:
        ...

    def set_id(self, value: Optional[int]) -> None:
        ...


class IdentityMixin:
    """
    Implements `Identifiable` on top of a dataclass `id` field.

    The host dataclass must declare ``id: Optional[int] = None``.
    """

    def get_id(self) -> Optional[int]:
        return self.id

    def set_id(self, value: Optional[int]) -> None:
        self.id = value

    def is_persisted(self) -> bool:
        """Returns True once the backend has assigned an id."""
        return self.id is not None
