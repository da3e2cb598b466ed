"""Configuration settings for golfbuddy sync."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

from golfbuddy.utils import get_golfbuddy_home

logger = logging.getLogger(__name__)

DEFAULT_SYNC_ENDPOINT = "http://localhost:8000/api"


class Settings(BaseSettings):
    """Sync settings loaded from the environment (``GOLFBUDDY_*``)."""

    # Remote endpoint
    sync_endpoint: str = DEFAULT_SYNC_ENDPOINT
    auth_token: Optional[str] = None
    request_timeout: float = 10.0

    # Engine
    pull_limit: int = 100
    sync_interval_hours: float = 24.0  # staleness ceiling shown in the UI
    full_snapshot_push: bool = False
    lease_ttl_seconds: float = 120.0

    # Scheduler delays (seconds)
    startup_sync_delay: float = 2.0
    online_sync_delay: float = 3.0
    game_completion_sync_delay: float = 1.0

    # Status surface
    status_poll_interval: float = 2.0
    connectivity_check_interval: float = 30.0

    # Local
    data_dir: Optional[Path] = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="GOLFBUDDY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or get_golfbuddy_home()

    @property
    def db_path(self) -> Path:
        return self.resolved_data_dir / "golfbuddy.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def validate_sync_endpoint(url: str, *, allow_localhost_http: bool = True) -> Optional[str]:
    """Validate a sync endpoint before any credentials are sent to it.

    Rejects non-http/https schemes, URLs with no host, and remote HTTP
    endpoints (only localhost/127.0.0.1 are allowed over plaintext HTTP).

    Returns:
        The URL without a trailing slash if valid, or ``None`` if rejected
        (with a warning logged for each rejection reason).
    """
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in {"https", "http"}:
        logger.warning("Invalid sync_endpoint scheme; only http/https allowed.")
        return None
    if not parsed.netloc:
        logger.warning("Invalid sync_endpoint; missing host.")
        return None
    if parsed.scheme == "http":
        if not allow_localhost_http:
            logger.warning("HTTP not allowed in this context.")
            return None
        host = parsed.hostname or ""
        if host not in {"localhost", "127.0.0.1"}:
            logger.warning("Refusing non-local http sync_endpoint for security.")
            return None
    return url.rstrip("/")
