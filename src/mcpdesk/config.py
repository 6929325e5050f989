"""Application configuration."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings read from `MCPDESK_*` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MCPDESK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Host-facing API
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    log_level: str = "INFO"

    # MCP sessions; None disables the limit
    connect_timeout_seconds: float | None = 30.0
    request_timeout_seconds: float | None = 60.0

    # Settings sync server. Unset means "resolve the LAN address".
    sync_bind_host: str | None = None

    max_host_events: int = 500


@lru_cache
def get_settings() -> Settings:
    return Settings()
