# celine/websub/core/config.py
"""
Central configuration for the WebSub subscriber service.

Environment variables (or a ``.env`` file) override defaults. The callback
base URL handed to the engine is ``websub_base_url`` plus
``websub_callback_prefix``.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings with sensible defaults."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    websub_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this service, as reachable by hubs",
    )
    websub_callback_prefix: str = Field(
        default="/websub/callback",
        description="Path under which callback requests are routed",
    )
    websub_lease_seconds: int = Field(
        default=0, ge=0, description="Requested lease (0 = let the hub decide)"
    )
    websub_base_retry_interval: int = Field(
        default=300, gt=0, description="Base retry interval in seconds"
    )
    websub_http_timeout: float = Field(default=30.0, gt=0)
    websub_max_redirects: int = Field(default=10, ge=0)
    websub_subscribe_on_startup: bool = True

    # Config file paths (glob patterns)
    topics_config_paths: list[str] = Field(
        default_factory=lambda: ["config/topics.yaml"]
    )

    @property
    def callback_base_url(self) -> str:
        prefix = "/" + self.websub_callback_prefix.strip("/")
        return self.websub_base_url.rstrip("/") + prefix


settings = Settings()
