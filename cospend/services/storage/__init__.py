"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements local JSON files as the backend, but designed to be swappable.
"""

from cospend.services.storage.interface import (
    AuditStorageInterface,
    CorruptDataError,
    KeyValueStorageInterface,
    StorageError,
)
from cospend.services.storage.local_storage import (
    InMemoryAuditStorage,
    InMemoryStorage,
    JsonFileStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStorageInterface",
    # Exceptions
    "CorruptDataError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryStorage",
    "JsonFileStorage",
]
