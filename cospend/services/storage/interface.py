"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the browser-style key-value model (one JSON document per key)
2. Use in-memory storage for testing
3. Swap the local files for something else later
4. Keep the stores decoupled from where bytes end up

The interface is intentionally simple - it is a key-value store of text,
nothing more. Parsing and validation happen in the stores.
"""

from abc import ABC, abstractmethod
from typing import Optional

from cospend.models.audit import AuditEvent


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for durable key-value storage.

    Values are opaque strings (JSON documents in practice).
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored text, or None if the key was never written

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Write (replace) the value stored under a key.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List stored keys, sorted."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """Stored data exists but cannot be parsed into the expected shape."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Stored data under '{key}' is corrupt: {message}")
