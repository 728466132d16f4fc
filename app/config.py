"""
Process-wide settings, read once from the environment at startup.

Required:
- LASTFM_API_KEY, LASTFM_API_SECRET
- LASTFM_SESSION_KEY, or LASTFM_USERNAME + LASTFM_PASSWORD_MD5
- WEBHOOK_API_KEY (shared secret expected in ?apikey= on inbound webhooks)
"""

from __future__ import annotations
import os
from dataclasses import dataclass

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"


class ConfigError(ValueError): ...


@dataclass(frozen=True)
class Settings:
    lastfm_api_key: str
    lastfm_api_secret: str
    lastfm_session_key: str | None
    webhook_api_key: str
    lastfm_username: str | None = None
    lastfm_password_md5: str | None = None
    lastfm_api_url: str = LASTFM_API_URL
    max_retries: int = 5
    retry_delay: float = 2.0
    request_timeout: float = 10.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    def validate(self) -> None:
        if not self.lastfm_api_key or not self.lastfm_api_secret:
            raise ConfigError("LASTFM_API_KEY and LASTFM_API_SECRET are required")
        if not (self.lastfm_session_key or (self.lastfm_username and self.lastfm_password_md5)):
            raise ConfigError("Provide LASTFM_SESSION_KEY or LASTFM_USERNAME + LASTFM_PASSWORD_MD5")
        if not self.webhook_api_key:
            raise ConfigError("WEBHOOK_API_KEY is required")
        if self.max_retries < 0:
            raise ConfigError("LASTFM_MAX_RETRIES must be >= 0")
        if self.retry_delay < 0:
            raise ConfigError("LASTFM_RETRY_DELAY must be >= 0")


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def from_env() -> Settings:
    settings = Settings(
        lastfm_api_key=os.getenv("LASTFM_API_KEY", ""),
        lastfm_api_secret=os.getenv("LASTFM_API_SECRET", ""),
        lastfm_session_key=os.getenv("LASTFM_SESSION_KEY") or None,
        webhook_api_key=os.getenv("WEBHOOK_API_KEY", ""),
        lastfm_username=os.getenv("LASTFM_USERNAME") or None,
        lastfm_password_md5=os.getenv("LASTFM_PASSWORD_MD5") or None,
        lastfm_api_url=os.getenv("LASTFM_API_URL", LASTFM_API_URL),
        max_retries=_int("LASTFM_MAX_RETRIES", 5),
        retry_delay=_float("LASTFM_RETRY_DELAY", 2.0),
        request_timeout=_float("LASTFM_TIMEOUT", 10.0),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int("PORT", 8000),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
    settings.validate()
    return settings
