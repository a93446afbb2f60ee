"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TABLE = "song_upvotes"


class ClientConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Counter store
    store_url: str
    api_key: str = Field(..., repr=False)
    table: str = DEFAULT_TABLE

    # Request behaviour
    request_timeout: Optional[float] = None
    bulk_chunk_size: int = 100
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: int = 60

    # Playback
    default_volume: int = 70

    # Internal field not loaded from INI file
    config_path: str = Field(..., repr=False)

    @field_validator("store_url")
    @classmethod
    def validate_store_url(cls, v: str) -> str:
        """Requires an absolute http(s) URL and drops any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Store URL must start with http:// or https://.")
        return v.rstrip("/")

    @field_validator("api_key", "table")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """A timeout of zero or less means no timeout at all."""
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("bulk_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1 or v > 500:
            raise ValueError("Bulk chunk size must be between 1 and 500.")
        return v

    @field_validator("circuit_failure_threshold", "circuit_recovery_timeout")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Circuit breaker settings must be at least 1.")
        return v

    @field_validator("default_volume")
    @classmethod
    def validate_volume(cls, v: int) -> int:
        if v < 0 or v > 100:
            raise ValueError("Default volume must be between 0 and 100.")
        return v

    @property
    def rest_url(self) -> str:
        """Base URL of the store's REST collection endpoint."""
        return f"{self.store_url}/rest/v1/{self.table}"

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
