"""Configuration management for Gmail Sender Report.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DispatchConfig(BaseModel):
    """Tunables consumed by the fetch-and-aggregate pipeline.

    Built once per run and handed to the dispatcher, fetcher and lister.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent_requests: int = Field(default=5, gt=0)
    inter_batch_delay_ms: int = Field(default=80, ge=0)
    max_retry_attempts: int = Field(default=3, ge=0)
    per_call_timeout_ms: int = Field(default=30_000, gt=0)
    retry_base_delay_ms: int = Field(default=500, ge=0)
    retry_max_delay_ms: int = Field(default=30_000, ge=0)

    @property
    def inter_batch_delay(self) -> float:
        return self.inter_batch_delay_ms / 1000.0

    @property
    def per_call_timeout(self) -> float:
        return self.per_call_timeout_ms / 1000.0


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the SENDER_REPORT_ prefix (e.g., SENDER_REPORT_MAX_CONCURRENT_REQUESTS).
    """

    model_config = SettingsConfigDict(
        env_prefix="SENDER_REPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API OAuth client secrets file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path where the authorized user token is cached",
    )
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.readonly",
        description="OAuth scope used for Gmail access. Reading headers only needs gmail.readonly.",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user id passed to the API ('me' is the authenticated user)",
    )
    list_page_size: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Number of message ids requested per users.messages.list page",
    )

    # Dispatch Configuration
    max_concurrent_requests: int = Field(
        default=5,
        gt=0,
        description="Maximum number of metadata requests in flight at once",
    )
    inter_batch_delay_ms: int = Field(
        default=80,
        ge=0,
        description="Pause between successive dispatch batches in milliseconds",
    )
    max_retry_attempts: int = Field(
        default=3,
        ge=0,
        description="Retries for a transiently failing request before the message is skipped",
    )
    per_call_timeout_ms: int = Field(
        default=30_000,
        gt=0,
        description="Timeout for a single Gmail API call in milliseconds",
    )
    retry_base_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Initial backoff delay in milliseconds, doubled on every retry",
    )
    retry_max_delay_ms: int = Field(
        default=30_000,
        ge=0,
        description="Upper bound for a single backoff delay in milliseconds",
    )

    # Output Configuration
    output_path: Path = Field(
        default=Path("gmail_senders_report.csv"),
        description="Where the sender report CSV is written",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    def dispatch_config(self) -> DispatchConfig:
        """Build the immutable pipeline configuration from these settings."""
        return DispatchConfig(
            max_concurrent_requests=self.max_concurrent_requests,
            inter_batch_delay_ms=self.inter_batch_delay_ms,
            max_retry_attempts=self.max_retry_attempts,
            per_call_timeout_ms=self.per_call_timeout_ms,
            retry_base_delay_ms=self.retry_base_delay_ms,
            retry_max_delay_ms=self.retry_max_delay_ms,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
