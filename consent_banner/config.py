"""Application configuration via pydantic-settings.

Site owners override the banner defaults through CONSENT_* environment
variables (.env file supported). Settings are organized into logical groups
and composed into a single Settings object.
"""

from __future__ import annotations

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class ConsentSettings(BaseSettings):
    """Banner content, policy version and cookie attributes."""

    model_config = SettingsConfigDict(env_prefix="CONSENT_", env_file=".env", extra="ignore")

    brand_name: str = Field(default="My Site")
    accent_color: str = Field(default="#b54600", description="CSS colour for --e84-consent-accent")
    logo_url: str = Field(default="", description="Optional 24x24 logo shown beside the text")
    policy_url: str = Field(default="/privacy-policy/", description="Target of the Learn More button")
    show_for_logged_in: bool = Field(default=False)
    cookie_version: str = Field(
        default="2025-09-15",
        description="Policy revision; bumping it re-prompts every visitor",
    )
    banner_text: str = Field(default="We use only essential cookies for security and performance.")
    cookie_duration: int = Field(default=180, ge=1, description="Cookie retention in days")
    cookie_name: str = Field(default="84em_consent")
    cookie_path: str = Field(default="/")
    cookie_domain: str = Field(default="")
    session_cookie_name: str = Field(
        default="session",
        description="Cookie whose presence marks a logged-in visitor",
    )

    @field_validator("accent_color")
    @classmethod
    def validate_accent_color(cls, v: str) -> str:
        """Only hex colours reach the inline style."""
        if not _HEX_COLOR.match(v):
            msg = f"Invalid accent colour: {v}. Expected #rgb, #rgba, #rrggbb or #rrggbbaa"
            raise ValueError(msg)
        return v

    @field_validator("cookie_version")
    @classmethod
    def validate_cookie_version(cls, v: str) -> str:
        """An empty version would make every stored record invalid."""
        if not v.strip():
            msg = "cookie_version must not be empty"
            raise ValueError(msg)
        return v.strip()


class SecuritySettings(BaseSettings):
    """Nonce signing for the acknowledgement endpoint."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    nonce_secret: str = Field(
        default="",
        description="HMAC key for nonces; a random per-process key is used when empty",
    )
    nonce_lifetime: int = Field(default=86400, ge=2, description="Nonce lifetime in seconds")


class ServerSettings(BaseSettings):
    """Uvicorn bind address."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.consent.cookie_version
        settings.security.nonce_lifetime
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Composed settings (loaded from same .env)
    consent: ConsentSettings = Field(default_factory=ConsentSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Module-level singleton — import this wherever settings are needed.
settings = Settings()
