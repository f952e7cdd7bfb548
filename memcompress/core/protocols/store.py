"""Key-value store protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """Protocol for durable whole-record storage."""

    def load(self, key: str) -> Optional[bytes]:
        """Return the stored record, or None if absent."""
        ...

    def save(self, key: str, data: bytes) -> None:
        """Replace the record under `key`.

        Raises:
            StorageError: If the write did not complete.
        """
        ...

    def delete(self, key: str) -> None:
        """Remove the record under `key` if present."""
        ...
