"""Key-value store interface shared by the storage backends."""
from __future__ import annotations

from typing import Any, Optional, Protocol


class PersistenceError(RuntimeError):
    """Raised when a store read or write fails or returns malformed data."""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class KeyValueStore(Protocol):
    """Async get/set of a single JSON value per key."""

    name: str

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or ``None`` when the key is absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store ``value``; raises :class:`PersistenceError` on failure."""
        ...

    async def aclose(self) -> None:
        ...


__all__ = ["KeyValueStore", "PersistenceError"]
