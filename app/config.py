"""Application settings loaded from .env via pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings


class UpstreamAuthError(RuntimeError):
    """Raised at startup when upstream API credentials are missing."""


class Settings(BaseSettings):
    """Central configuration — values come from environment / .env file."""

    # Spotify (client-credentials flow)
    spotify_client_id: str = ""
    spotify_client_secret: str = ""

    # YouTube Data API v3
    youtube_api_key: str = ""
    youtube_daily_quota: int = 10000
    youtube_search_cost: int = 100
    youtube_max_searches_per_session: int = 90
    youtube_quota_timezone: str = "America/Los_Angeles"
    youtube_max_results: int = 5
    youtube_batch_size: int = 5
    youtube_throttle_ms: int = 50

    # Outbound HTTP
    request_timeout: float = 10.0

    # Search cache
    search_cache_ttl: int = 86400

    # Shared playlist storage
    storage_backend: str = "sqlite"  # "sqlite" | "memory"
    db_path: str = "./data/tunebridge.db"
    playlist_ttl: int = 86400 * 7

    # Rate limiting (requests per client per window)
    rate_limit_window: int = 15 * 60
    rate_limit_conversion: int = 10
    rate_limit_fetch: int = 20
    rate_limit_general: int = 100
    rate_limit_shared: int = 100

    # App
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]
    require_credentials: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def db_abs_path(self) -> Path:
        """Return the database path as an absolute Path, creating parents if needed."""
        p = Path(self.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p.resolve()

    def check_credentials(self) -> None:
        """Raise ``UpstreamAuthError`` listing every missing credential."""
        missing = [
            env
            for env, value in (
                ("SPOTIFY_CLIENT_ID", self.spotify_client_id),
                ("SPOTIFY_CLIENT_SECRET", self.spotify_client_secret),
                ("YOUTUBE_API_KEY", self.youtube_api_key),
            )
            if not value
        ]
        if missing:
            raise UpstreamAuthError(
                f"Missing credentials: {', '.join(missing)} — set them in .env"
            )


@lru_cache
def get_settings() -> Settings:
    """Cached singleton so .env is read only once."""
    return Settings()
