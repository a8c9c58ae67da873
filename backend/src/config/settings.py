"""
Application settings configuration for the notification backend.

Centralized settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment Variables:
        VAPID_PUBLIC_KEY: Web Push VAPID public key (Base64url-encoded)
        VAPID_PRIVATE_KEY: Web Push VAPID private key (Base64url-encoded)
        VAPID_SUBJECT: VAPID subject identifier (mailto: or https: URL)
        WNP_APP_URL: Public URL of the web application (allowed CORS origin)
        WNP_PUSH_TITLE: Title shown on every Web Push notification
        WNP_OVERDUE_BATCH_SIZE: Page size of the overdue task scan (default: 50)
        WNP_OVERDUE_CHECK_HOUR: UTC hour of the daily overdue scan (default: 0)
        WNP_OVERDUE_SCHEDULER_ENABLED: Start the daily scan with the API (default: True)
        WNP_REALTIME_QUEUE_SIZE: Buffered events per live stream connection (default: 100)
        WNP_MENTION_PREVIEW_LENGTH: Max length of comment previews (default: 100)
        RATE_LIMIT_STORAGE_URI: Storage backend URI for rate limiting (default: "memory://")
    """

    # VAPID settings for Web Push notifications
    vapid_public_key: str = Field(
        default="",
        validation_alias="VAPID_PUBLIC_KEY",
        description="Base64url-encoded VAPID public key for Web Push subscriptions"
    )

    vapid_private_key: str = Field(
        default="",
        validation_alias="VAPID_PRIVATE_KEY",
        description="Base64url-encoded VAPID private key for signing push messages"
    )

    vapid_subject: str = Field(
        default="",
        validation_alias="VAPID_SUBJECT",
        description="VAPID subject (mailto: or https: URL identifying the push sender)"
    )

    app_url: str = Field(
        default="http://localhost:3000",
        validation_alias="WNP_APP_URL",
        description="Base URL of the web application (allowed CORS origin)"
    )

    push_title: str = Field(
        default="What's Next Please",
        validation_alias="WNP_PUSH_TITLE",
    )

    # Overdue task scan
    overdue_batch_size: int = Field(
        default=50,
        validation_alias="WNP_OVERDUE_BATCH_SIZE",
        ge=1,
        le=1000,
    )

    overdue_check_hour: int = Field(
        default=0,
        validation_alias="WNP_OVERDUE_CHECK_HOUR",
        ge=0,
        le=23,
        description="UTC hour at which the daily overdue scan starts"
    )

    overdue_scheduler_enabled: bool = Field(
        default=True,
        validation_alias="WNP_OVERDUE_SCHEDULER_ENABLED",
    )

    # Live stream buffering per connection
    realtime_queue_size: int = Field(
        default=100,
        validation_alias="WNP_REALTIME_QUEUE_SIZE",
        ge=1,
    )

    mention_preview_length: int = Field(
        default=100,
        validation_alias="WNP_MENTION_PREVIEW_LENGTH",
        ge=4,
        le=500,
    )

    # Rate limiting storage backend
    #   "memory://"              - single process
    #   "redis://localhost:6379" - shared between workers
    rate_limit_storage_uri: str = Field(
        default="memory://",
        validation_alias="RATE_LIMIT_STORAGE_URI",
        description="Storage backend URI for rate limiting counters"
    )

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("vapid_subject")
    @classmethod
    def validate_vapid_subject(cls, v: str) -> str:
        """VAPID subject must be a mailto: or https: URL."""
        if v and not (v.startswith("mailto:") or v.startswith("https://")):
            raise ValueError("VAPID_SUBJECT must start with 'mailto:' or 'https://'")
        return v

    @property
    def vapid_configured(self) -> bool:
        """Check if VAPID keys are properly configured for Web Push."""
        return bool(self.vapid_public_key and self.vapid_private_key and self.vapid_subject)

    @property
    def vapid_claims(self) -> Dict[str, str]:
        """VAPID claims dict passed to pywebpush."""
        return {"sub": self.vapid_subject} if self.vapid_subject else {}


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings instance.

    Returns:
        AppSettings: Configured application settings from environment
    """
    return AppSettings()
