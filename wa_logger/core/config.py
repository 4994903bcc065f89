"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Optional

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

    # Application
    app_name: str = Field(default="WhatsApp Logger")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Security
    webhook_secret: Optional[str] = Field(default=None, description="HMAC-SHA256 secret for the event bridge")

    # Database
    database_url: str = Field(default="sqlite:///./data/whatsapp_logs.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Transport sidecar
    transport_url: Optional[str] = Field(default="http://localhost:3001")
    transport_timeout: float = Field(default=30.0)
    account_name: str = Field(default="Me", description="Sender name used for outgoing messages")

    # Media
    media_dir: str = Field(default="./media")

    # Group metadata queue
    group_metadata_delay_ms: int = Field(default=1000, ge=0)
    group_metadata_max_retries: int = Field(default=3, ge=1)

    # Receipts
    status_fallback_width: int = Field(default=10, ge=1)

    @property
    def is_webhook_secret_configured(self) -> bool:
        """Check if webhook secret is properly configured."""
        return bool(self.webhook_secret and len(self.webhook_secret) > 0)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
