"""Client configuration read from the environment."""

import os

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ClientConfig(BaseModel):
    """Connection and rendering settings."""

    url: str = "ws://localhost:9001"
    retry_interval: float = Field(default=5.0, ge=0)  # seconds
    max_retries: int = Field(default=0, ge=0)
    heartbeat_interval: float = Field(default=5.0, gt=0)  # seconds
    highlight_inline_styles: bool = True

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build settings from ARRAKIS_* environment variables."""
        return cls(
            url=os.getenv("ARRAKIS_URL", "ws://localhost:9001"),
            retry_interval=os.getenv("ARRAKIS_RETRY_INTERVAL", "5.0"),
            max_retries=os.getenv("ARRAKIS_MAX_RETRIES", "0"),
            heartbeat_interval=os.getenv("ARRAKIS_HEARTBEAT_INTERVAL", "5.0"),
            highlight_inline_styles=_env_bool("ARRAKIS_HIGHLIGHT_INLINE_STYLES", True),
        )
