"""Abstract base class for durable key-value storage.

Session persistence stores a handful of JSON documents (the item
collection, the global settings, app preferences) under fixed keys. This
interface keeps the session layer independent of where the documents live,
so tests can use an in-memory database and the app a file on disk.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyValueStore(ABC):
    """Durable JSON document store keyed by string.

    Implementations must provide:
    - Atomic replace of a whole document per key
    - JSON round trip of dicts, lists and scalars
    - Missing keys reported as None, never as an error
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Load the document stored under ``key``.

        Returns:
            Decoded JSON value, or None if the key was never written
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the document stored under ``key``.

        Args:
            key: Storage key
            value: JSON-serializable value
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is a no-op."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass
