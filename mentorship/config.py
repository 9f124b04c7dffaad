"""
Type-safe configuration using Pydantic Settings
Validates environment variables and provides sensible defaults
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from mentorship.exceptions import ConfigurationError


class MentorshipConfig(BaseSettings):
    """
    Booking core configuration with validation
    Automatically loads from environment variables and .env file
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    environment: str = Field("development", description="development or production")

    # Database settings
    database_url: str = Field(
        "sqlite:///mentorship.db", description="SQLAlchemy database URL"
    )

    # Mail provider settings
    resend_api_key: Optional[str] = Field(None, description="Resend API key")
    email_from: Optional[str] = Field(None, description="Sender address for emails")
    resend_api_url: str = Field("https://api.resend.com", description="Resend API base URL")

    web_app_url: str = Field(
        "http://localhost:3001", description="Product app URL used for booking links"
    )

    # Optional admin channel
    discord_webhook_url: Optional[str] = Field(
        None, description="Discord webhook for admin summaries"
    )

    # Waitlist notification settings
    notification_cooldown_days: int = Field(
        7,
        ge=1,
        le=90,
        description="Minimum days between repeat notifications to one recipient",
    )
    send_timeout_seconds: float = Field(
        5.0, ge=0.5, le=30, description="Timeout for a single outbound send"
    )
    send_concurrency: int = Field(
        2, ge=1, le=20, description="Maximum concurrent outbound mail sends"
    )

    # Rate limiting
    rate_limit_backend: str = Field("memory", description="memory or redis")
    redis_url: str = Field("redis://localhost:6379/0", description="Redis URL")
    rate_limit_max_requests: int = Field(10, ge=1, description="Requests per window")
    rate_limit_window_seconds: int = Field(60, ge=1, description="Window length in seconds")

    @field_validator("rate_limit_backend")
    @classmethod
    def validate_rate_limit_backend(cls, v: str) -> str:
        """Only in-memory and Redis backends exist"""
        v = v.strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("RATE_LIMIT_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator("email_from")
    @classmethod
    def validate_email_from(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and "@" not in v:
            raise ValueError("EMAIL_FROM must be an email address")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def mail_enabled(self) -> bool:
        return bool(self.resend_api_key and self.email_from)

    def require_mail_settings(self) -> bool:
        """
        Check mail provider configuration.

        Returns:
            bool: True when mail can be sent, False when it is optional and missing

        Raises:
            ConfigurationError: If mail settings are missing in production
        """
        if self.mail_enabled:
            return True
        if self.is_production:
            missing = "RESEND_API_KEY" if not self.resend_api_key else "EMAIL_FROM"
            raise ConfigurationError(f"{missing} is not set (required in production)")
        return False

    def build_booking_url(self, url: str) -> str:
        """Resolve offer URLs that are stored as product-app paths"""
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"{self.web_app_url.rstrip('/')}/{url.lstrip('/')}"


# Singleton instance
_config: Optional[MentorshipConfig] = None


def get_config() -> MentorshipConfig:
    """
    Get or create the global configuration instance

    Returns:
        MentorshipConfig: Validated configuration

    Raises:
        ValidationError: If configuration is invalid
    """
    global _config
    if _config is None:
        _config = MentorshipConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (tests and reloads)"""
    global _config
    _config = None
