"""Services package."""

from cospend.services.analysis import (
    AnalysisError,
    AnalysisParseError,
    AnalysisServiceError,
    GeminiReceiptAnalyzer,
    InvalidImageError,
)
from cospend.services.storage import (
    AuditStorageInterface,
    CorruptDataError,
    InMemoryAuditStorage,
    InMemoryStorage,
    JsonFileStorage,
    KeyValueStorageInterface,
    StorageError,
)

__all__ = [
    # Analysis services
    "AnalysisError",
    "AnalysisParseError",
    "AnalysisServiceError",
    "GeminiReceiptAnalyzer",
    "InvalidImageError",
    # Storage services
    "AuditStorageInterface",
    "CorruptDataError",
    "InMemoryAuditStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "KeyValueStorageInterface",
    "StorageError",
]
