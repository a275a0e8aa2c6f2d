"""
Settings for the clinicomm messaging service.

Environment variable configuration for channel providers, persistence and
the realtime presence registry.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    pyproject_data = tomllib.load(f)
                    version = pyproject_data.get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & General Configuration
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.port: int = int(os.getenv("PORT", "8000"))
        self.time_zone: str = os.getenv("TIME_ZONE", "UTC")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # WhatsApp Cloud API
        # ================================================================
        self.whatsapp_verify_token: str | None = os.getenv("WHATSAPP_VERIFY_TOKEN")
        self.whatsapp_api_version: str = os.getenv("WHATSAPP_API_VERSION", "v21.0")
        self.whatsapp_base_url: str = os.getenv(
            "WHATSAPP_BASE_URL", "https://graph.facebook.com/"
        )

        # ================================================================
        # SMS & Email Providers
        # ================================================================
        self.sms_base_url: str = os.getenv("SMS_BASE_URL", "https://api.twilio.com")
        self.email_base_url: str = os.getenv(
            "EMAIL_BASE_URL", "https://api.brevo.com"
        )

        # ================================================================
        # Persistence
        # ================================================================
        self.database_url: str = os.getenv(
            "DATABASE_URL", "sqlite+aiosqlite:///./clinicomm.db"
        )
        self.redis_url: str | None = os.getenv("REDIS_URL")
        self.redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "64"))

        # ================================================================
        # Realtime, Timeouts & Media
        # ================================================================
        self.presence_ttl_seconds: int = int(
            os.getenv("PRESENCE_TTL_SECONDS", "86400")
        )
        self.send_timeout_seconds: float = float(
            os.getenv("SEND_TIMEOUT_SECONDS", "30")
        )
        self.media_timeout_seconds: float = float(
            os.getenv("MEDIA_TIMEOUT_SECONDS", "30")
        )
        # Messages left in "sending" longer than this are considered lost
        self.stale_sending_seconds: int = int(
            os.getenv("STALE_SENDING_SECONDS", "900")
        )
        # 0 disables the periodic sweep
        self.stale_sweep_interval_seconds: int = int(
            os.getenv("STALE_SWEEP_INTERVAL_SECONDS", "0")
        )
        self.media_dir: str = os.getenv("MEDIA_DIR", "./media")
        self.media_base_url: str = os.getenv("MEDIA_BASE_URL", "/media")

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"
        self.environment = self.environment.upper()

        if self.presence_ttl_seconds <= 0:
            raise ValueError("PRESENCE_TTL_SECONDS must be positive")
        if self.send_timeout_seconds <= 0 or self.media_timeout_seconds <= 0:
            raise ValueError("Timeouts must be positive")

    @property
    def has_redis(self) -> bool:
        """Check if Redis is configured."""
        return self.redis_url is not None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "PROD"


# Global settings instance
settings = Settings()
