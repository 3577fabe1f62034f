"""Pydantic Settings for the image harvester service.

All environment variables use the IMGHARVEST_ prefix.
Example: IMGHARVEST_PORT=3000, IMGHARVEST_PROXY_POOL=http://u:p@proxy1:8080,socks5://proxy2:1080
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class ScraperSettings(BaseSettings):
    """Harvester service configuration validated from environment variables."""

    # Service
    port: int = 3000
    log_level: str = "INFO"
    environment: str = "development"
    log_dir: str | None = "logs"

    # Proxy pool
    proxy_pool: str = ""  # Comma-separated proxy URLs
    proxy_sticky_ttl_seconds: int = Field(default=900, ge=1)  # 15 minutes
    proxy_rotate_on: Literal["error", "never"] = "error"
    proxy_default_cooldown_seconds: float = Field(default=60, gt=0)
    proxy_max_cooldown_seconds: float = Field(default=300, gt=0)

    # Identities
    identities_path: str | None = None  # YAML override for the built-in pool

    # Render path
    human_interaction: bool = True
    navigation_timeout_ms: int = Field(default=30000, ge=1000)

    # Static path / metadata
    static_timeout_seconds: float = Field(default=8.0, gt=0)
    head_timeout_seconds: float = Field(default=8.0, gt=0)
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    probe_concurrency: int = Field(default=8, ge=1, le=64)
    max_response_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)

    model_config = {"env_prefix": "IMGHARVEST_"}

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
