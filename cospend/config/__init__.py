"""Configuration package."""

from cospend.config.settings import (
    GeminiSettings,
    RuntimeSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "GeminiSettings",
    "RuntimeSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
