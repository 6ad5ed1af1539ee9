"""Configuration management for the Snappy client."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_url: str = Field(default="http://localhost:5001/api", description="Base URL of the Snappy API")
    request_timeout_seconds: float = Field(default=30.0, description="Upper bound for every outbound request")

    # Session Configuration
    token_ttl_seconds: int = Field(default=24 * 60 * 60, description="Lifetime of a freshly stored access token")
    session_extension_seconds: int = Field(
        default=60 * 60, description="Sliding expiration applied after each successful response"
    )
    token_storage_path: Path | None = Field(
        default=None, description="JSON file for persisted tokens (in-memory when unset)"
    )
    login_route: str = Field(default="/login", description="Route handed to the auth failure callback")

    # Query Cache Configuration
    query_stale_seconds: float = Field(
        default=60.0, description="Age after which cached query data is refetched on read"
    )

    # Notifications
    notification_history_limit: int = Field(default=50, description="Maximum notifications kept in history")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment reported to Logfire")
    logfire_auto_configure: bool = Field(
        default=True, description="Configure Logfire when the first client is created"
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_TOO_MANY_REQUESTS: int = 429

    # Request headers
    HEADER_AUTHORIZATION: str = "Authorization"
    HEADER_CSRF: str = "X-CSRF-Token"
    HEADER_REQUEST_TIME: str = "X-Request-Time"
    HEADER_RETRY_AFTER: str = "Retry-After"

    # Methods that must carry a CSRF token
    STATE_CHANGING_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})

    # Auth endpoints
    CSRF_TOKEN_PATH: str = "/auth/csrf-token"
    REFRESH_PATH: str = "/auth/refresh"

    # Persisted storage keys
    STORAGE_TOKEN_KEY: str = "__app_secure_token__"
    STORAGE_REFRESH_KEY: str = "__app_refresh_token__"
    STORAGE_EXPIRY_KEY: str = "__app_token_expiry__"

    # Optimistic records
    TEMP_ID_PREFIX: str = "temp-"

    # User-facing messages
    NETWORK_ERROR_MESSAGE: str = "Network error. Please check your connection."
    RATE_LIMIT_MESSAGE: str = "Too many requests. Please try again later."
    RATE_LIMIT_RETRY_MESSAGE: str = "Too many requests. Please try again in {seconds} seconds."
    SESSION_EXPIRED_MESSAGE: str = "Your session has expired. Please log in again."


def get_settings() -> Settings:
    """Get client settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
