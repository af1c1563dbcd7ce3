"""
Configuration Management for CoSpend

Environment-driven settings (pydantic-settings). Each class reads its own
prefix (GEMINI_, STORAGE_, APP_) from the environment or a `.env` file.

Note: the user-facing preferences (party names, current user) are NOT
configuration. They live in the key-value store, see
cospend.store.settings_store.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini receipt analysis configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    
    # One attempt means no retry at all
    max_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Attempts per analysis call on transport errors"
    )
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Exponential backoff multiplier between attempts"
    )


class StorageSettings(BaseSettings):
    """Local key-value storage configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    data_dir: Path = Field(
        default=Path(".cospend"),
        description="Directory holding one JSON document per storage key"
    )
    seed_sample_data: bool = Field(
        default=False,
        description="Start with two sample expenses when nothing is stored yet"
    )
    strict_load: bool = Field(
        default=False,
        description="Refuse to start when stored data is corrupt"
    )


class RuntimeSettings(BaseSettings):
    """Runtime limits and display options (APP_ prefix)."""
    
    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Logging
    log_level: str = Field(
        default="INFO",
        description="Standard library logging level name"
    )
    
    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp,heic",
        description="Comma-separated list of supported image formats"
    )
    
    # Display
    currency_symbol: str = Field(
        default="¥",
        max_length=5,
        description="Symbol shown in front of amounts"
    )
    
    # Validation thresholds
    max_expense_amount: float = Field(
        default=1000000.0,
        gt=0,
        description="Amounts above this are flagged for review (not rejected)"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        description="How many days in the future an expense date can be"
    )
    
    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept any case, store upper case."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
    
    @property
    def supported_formats_list(self) -> list[str]:
        """Lower-cased file extensions accepted for receipts."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]
    
    @property
    def supported_mime_types(self) -> set[str]:
        """MIME types matching the supported formats."""
        return {
            "image/jpeg" if fmt in ("jpg", "jpeg") else f"image/{fmt}"
            for fmt in self.supported_formats_list
        }
    
    @property
    def max_upload_size_bytes(self) -> int:
        """Upload limit in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """Entry point to the per-concern settings classes."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Loaded lazily so the app runs without a Gemini key (manual entry only)
    
    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()
    
    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()
    
    @property
    def app(self) -> RuntimeSettings:
        return RuntimeSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try loading every settings group.
    
    Returns {group: loaded_ok}, plus "<group>_error" with the message for
    groups that failed (the settings page shows these).
    """
    results = {}
    
    settings = get_settings()
    
    for name in ("gemini", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
