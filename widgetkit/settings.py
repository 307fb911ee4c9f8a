"""Widget server settings.

All settings can be configured via environment variables with the prefix
WIDGETKIT_. For example, WIDGETKIT_BUILD_ID=abc123 folds ``-abc123`` into
every generated widget URI.
"""

from __future__ import annotations

from typing import Literal
from urllib.parse import urlsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WidgetServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WIDGETKIT_",
        env_file=".env",
        extra="ignore",
    )

    name: str = "widgetkit-server"
    host: str = "0.0.0.0"
    port: int = 8000
    base_url: str | None = Field(
        default=None,
        description="Public URL of this server; its origin is whitelisted in widget CSP.",
    )
    build_id: str | None = Field(
        default=None, description="Build tag folded into generated widget URIs."
    )
    tool_notify_delay: float = Field(
        default=0.05,
        description="Seconds to wait before announcing a newly registered tool.",
    )
    stateless_http: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @property
    def server_origin(self) -> str | None:
        if not self.base_url:
            return None
        parts = urlsplit(self.base_url)
        if not parts.scheme or not parts.netloc:
            return None
        return f"{parts.scheme}://{parts.netloc}"
