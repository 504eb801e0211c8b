"""Configuration for the chatwire client.

Settings are loaded from ``CHATWIRE_*`` environment variables (or a ``.env``
file) and validated with Pydantic so misconfiguration fails early.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from chatwire.session.store import MAX_HISTORY_MESSAGES

DEFAULT_RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 30.0


def default_storage_path() -> Path:
    """Default location of the session store file."""
    return Path.home() / ".chatwire" / "sessions.json"


class ClientSettings(BaseSettings):
    """Client settings loaded from environment."""

    model_config = ConfigDict(
        env_prefix="CHATWIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection settings
    base_url: str = Field(
        default="ws://127.0.0.1:3000",
        description="Agent gateway base URL (ws, wss, http or https)"
    )
    token: str | None = Field(
        default=None,
        description="Bearer token sent as the ?token= query parameter"
    )

    # Reconnection settings
    reconnect_delay: float = Field(
        default=DEFAULT_RECONNECT_DELAY,
        gt=0,
        description="Initial reconnect delay in seconds"
    )
    max_reconnect_delay: float = Field(
        default=MAX_RECONNECT_DELAY,
        gt=0,
        description="Upper bound for the reconnect delay in seconds"
    )
    auto_reconnect: bool = Field(
        default=True,
        description="Reconnect automatically after an unintentional close"
    )

    # Session settings
    max_history_messages: int = Field(
        default=MAX_HISTORY_MESSAGES,
        ge=1,
        le=10000,
        description="Messages kept per session"
    )
    storage_path: Path | None = Field(
        default_factory=default_storage_path,
        description="Session store file; None keeps sessions in memory"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL scheme."""
        v = v.strip().rstrip("/")
        if not v.startswith(("ws://", "wss://", "http://", "https://")):
            raise ValueError("Base URL must start with ws://, wss://, http:// or https://")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_delays(self) -> "ClientSettings":
        if self.max_reconnect_delay < self.reconnect_delay:
            raise ValueError("max_reconnect_delay must be >= reconnect_delay")
        return self
