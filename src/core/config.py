"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without polluting the CLI.
- Lets adapters (HTTP) and services read config consistently.
- Built once at start-up and passed explicitly; there is no global config object.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "https://api.cloudflare.com/client/v4"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Missing credentials, missing or conflicting flags.

    Always raised before any network call; the CLI maps it to exit code 1.
    """


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "cfpurge"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "cfpurge"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "cfpurge"
    return Path.home() / ".config" / "cfpurge"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


class AppSettings(BaseSettings):
    """Central application configuration.

    Why pydantic-settings:
    - Typing + validation at the edge (env vars) without leaking into the core.
    - One configuration contract for the CLI and the adapters.

    Credentials keep the conventional `CLOUDFLARE_*` names; tool tunables use
    the `CFPURGE_` prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="CFPURGE_",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
        # Order: project first, then the per-user config file.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLOUDFLARE_API_TOKEN", "CFPURGE_API_TOKEN"),
        description="Scoped API token (preferred authentication).",
    )
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLOUDFLARE_API_KEY", "CFPURGE_API_KEY"),
        description="Global API key (legacy, requires `email`).",
    )
    email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLOUDFLARE_EMAIL", "CFPURGE_EMAIL"),
        description="Account e-mail paired with the global API key.",
    )
    account_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLOUDFLARE_ACCOUNT_ID", "CFPURGE_ACCOUNT_ID"),
        description="Account id, required by every KV operation.",
    )

    api_base_url: str = Field(
        default=DEFAULT_API_BASE_URL,
        min_length=8,
        description="Base URL of the REST API.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout per request (seconds).",
    )
    user_agent: str = Field(
        default="cfpurge/0.1",
        min_length=1,
        description="User-Agent sent with every API request.",
    )

    max_concurrency: int = Field(
        default=16,
        ge=1,
        le=500,
        description="Maximum number of batches running at the same time.",
    )
    operation_timeout_seconds: float | None = Field(
        default=300.0,
        ge=0,
        description="Deadline for one batch (seconds); 0 disables it.",
    )

    log_level: str = Field(
        default="WARNING",
        description="Level for the root logger (DEBUG, INFO, WARNING, ERROR).",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def batch_timeout(self) -> float | None:
        if not self.operation_timeout_seconds:
            return None
        return self.operation_timeout_seconds

    def has_auth(self) -> bool:
        return bool(self.api_token) or bool(self.api_key and self.email)

    def require_auth(self) -> None:
        if not self.has_auth():
            raise ConfigurationError(
                "Authentication required. Set either CLOUDFLARE_API_TOKEN, "
                "or both CLOUDFLARE_API_KEY and CLOUDFLARE_EMAIL "
                "(or pass --token / --key --email)."
            )

    def require_account_id(self) -> str:
        if not self.account_id:
            raise ConfigurationError(
                "Account id is required for this operation. "
                "Set CLOUDFLARE_ACCOUNT_ID or pass --account."
            )
        return self.account_id

    def auth_headers(self) -> dict[str, str]:
        """Headers for the configured authentication method."""

        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        if self.api_key and self.email:
            return {"X-Auth-Email": self.email, "X-Auth-Key": self.api_key}
        return {}
