"""Service configuration using Pydantic Settings"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spyglass.core.exceptions import ExitCode, FatalStartupError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/webhooks/callback"

# Names an env file to load instead of ./.env; it must exist when set
ENV_FILE_VAR = "SPYGLASS_ENV_FILE"


class Settings(BaseSettings):
    """Service settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path.cwd() / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch app credentials
    client_id: str = Field(..., description="Twitch application Client ID")
    client_secret: str = Field(..., description="Twitch application Client Secret")

    # Public base URL Twitch delivers callbacks to
    callback_url: str = Field(..., description="Public base URL of this service")

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")

    # Message bus
    notify_channel: str = Field(
        default="stream_events", description="PostgreSQL NOTIFY channel for stream events"
    )

    # Remote endpoints
    helix_url: str = Field(default="https://api.twitch.tv/helix", description="Helix base URL")
    oauth_url: str = Field(default="https://id.twitch.tv/oauth2", description="OAuth base URL")

    # Timeouts and retry
    http_timeout: float = Field(default=10.0, description="Outbound HTTP timeout in seconds")
    token_refresh_timeout: float = Field(
        default=30.0, description="Max seconds to wait for an in-flight token refresh"
    )
    list_retry_delay: float = Field(
        default=30.0, description="Delay between subscription listing attempts"
    )
    list_max_attempts: int = Field(
        default=10, description="Subscription listing attempts before giving up"
    )

    # Control plane
    admin_token: str = Field(default="", description="Bearer token for operator endpoints")
    prune_orphans: bool = Field(
        default=False, description="Delete remote subscriptions unknown to the database"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql://"""
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("callback_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def webhook_callback(self) -> str:
        """Full callback URL registered with Twitch"""
        return f"{self.callback_url}{CALLBACK_PATH}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]


def load_settings() -> Settings:
    """Load settings from the environment and the selected env file.

    Raises FatalStartupError when ``SPYGLASS_ENV_FILE`` names a missing file,
    and pydantic's ValidationError when a required variable is absent.
    """
    env_file = os.environ.get(ENV_FILE_VAR)
    if not env_file:
        return get_settings()
    if not Path(env_file).is_file():
        raise FatalStartupError(
            f"{ENV_FILE_VAR} points to a missing file: {env_file}", ExitCode.MISSING_CONFIG_FILE
        )
    return Settings(_env_file=env_file)  # type: ignore[call-arg]
