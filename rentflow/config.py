"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./rentflow.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Payment gateway webhooks
    gateway_webhook_token: str = Field(
        default="", description="Shared secret expected in x-callback-token for invoice webhooks"
    )
    payout_webhook_token: str = Field(
        default="", description="Shared secret expected in x-callback-token for payout webhooks"
    )

    # Payout gateway
    payout_api_base_url: str = Field(
        default="https://api.xendit.co", description="Base URL of the payout gateway"
    )
    payout_secret_key: str = Field(default="", description="Secret key for payout API basic auth")
    payout_timeout_seconds: float = Field(
        default=15.0, description="Timeout for a single payout API call"
    )
    payout_currency: str = Field(default="PHP", description="Currency of disbursements")
    minimum_payout: Decimal = Field(
        default=Decimal("50"), description="Per-landlord payout floor"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # API
    api_title: str = Field(default="rentflow API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None


__all__ = ["Settings", "get_settings", "reset_settings"]
