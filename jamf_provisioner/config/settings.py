"""
Central configuration using Pydantic BaseSettings.

Every value can come from the environment (JAMF_ prefix) or a .env file;
CLI flags override them at run time.

Usage:
    from jamf_provisioner.config.settings import get_settings

    settings = get_settings()
    print(settings.server_url)

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_RELEASES_FEED = "https://developer.apple.com/news/releases/rss/releases.rss"


def normalize_server_url(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and trailing slashes, require an http(s) scheme.

    Raises:
        ValueError: Not an http:// or https:// URL
    """
    if value is None or not value.strip():
        return None
    value = value.strip().rstrip("/")
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"server_url must start with http:// or https://, got '{value}'")
    return value


def _default_output_dir() -> Path:
    """Desktop when it exists (the operator's usual place), else home."""
    desktop = Path.home() / "Desktop"
    return desktop if desktop.is_dir() else Path.home()


class ProvisionerSettings(BaseSettings):
    """Root settings for a provisioning run."""

    model_config = {
        "env_prefix": "JAMF_",
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Server
    server_url: Optional[str] = None
    username: Optional[str] = None
    verify_ssl: bool = True
    request_timeout: int = 30

    # Output files
    log_path: Path = _default_output_dir() / "JamfProvisionerLogs.txt"
    teardown_path: Path = _default_output_dir() / "JamfProvisionerDeconstructor.py"

    # Server-side propagation
    settle_seconds: float = 5.0
    propagation_interval: float = 5.0
    propagation_attempts: int = 6

    # Workflow
    os_floor: str = "10.15"
    latest_macos_version: Optional[str] = None
    releases_feed_url: str = DEFAULT_RELEASES_FEED

    # Logging
    log_level: str = "WARNING"
    log_format: str = "text"

    @field_validator("server_url")
    @classmethod
    def _normalize_server_url(cls, value: Optional[str]) -> Optional[str]:
        return normalize_server_url(value)

    @field_validator("propagation_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("propagation_attempts must be at least 1")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value


@lru_cache(maxsize=1)
def get_settings() -> ProvisionerSettings:
    """
    Get the provisioner settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    return ProvisionerSettings()
