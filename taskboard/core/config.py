"""Configuration management for taskboard."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/taskboard.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Principal token signing
    secret_key: str | None = Field(default=None, description="Secret used to sign principal bearer tokens")
    token_max_age_seconds: int = Field(default=86400, description="Maximum accepted age of a bearer token")

    # Workflow engine
    conflict_max_retries: int = Field(
        default=3, description="Attempts made when a task update loses an optimistic version race"
    )
    conflict_backoff_seconds: float = Field(
        default=0.05, description="Base delay for exponential backoff between conflicting attempts"
    )
    operation_timeout_seconds: float = Field(
        default=10.0, description="Deadline for a single workflow operation, including retries"
    )

    @property
    def is_production(self) -> bool:
        """Return True when running in production."""
        return self.environment.lower() == "production"

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_CREATED: int = 201
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_UNPROCESSABLE: int = 422
    HTTP_SERVER_ERROR: int = 500
    HTTP_GATEWAY_TIMEOUT: int = 504

    # Task field limits
    MAX_TITLE_LENGTH: int = 100
    MAX_DESCRIPTION_LENGTH: int = 1000
    MAX_NOTES_LENGTH: int = 2000
    MAX_COMMENT_LENGTH: int = 500
    MIN_PROGRESS: int = 0
    MAX_PROGRESS: int = 100

    # Query views
    QUERY_CHUNK_SIZE: int = 100  # Page size used when scanning the tasks table
    UPCOMING_DEFAULT_DAYS: int = 7


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
