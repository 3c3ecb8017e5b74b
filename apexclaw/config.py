"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openrouter_api_key: str = Field(..., alias="OPENROUTER_API_KEY")
    model_id: str = Field(default="z-ai/glm-4.7", alias="OPENROUTER_MODEL")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        alias="OPENROUTER_BASE_URL",
    )
    telegram_bot_token: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    telegram_poll_timeout_seconds: int = Field(default=30, alias="TELEGRAM_POLL_TIMEOUT_SECONDS")
    owner_id: str = Field(..., alias="OWNER_ID")
    jina_api_key: str = Field(default="", alias="JINA_API_KEY")
    # Comma-separated Telegram user ids allowed to talk to the bot (owner is always allowed).
    allowed_users: str = Field(default="", alias="ALLOWED_USERS")
    max_iterations: int = Field(default=10, alias="MAX_ITERATIONS")
    history_ceiling: int = Field(default=60, alias="MAX_HISTORY")
    request_timeout_seconds: float = Field(default=90.0, alias="REQUEST_TIMEOUT_SECONDS")
    agent_timeout_seconds: float = Field(default=12 * 60.0, alias="AGENT_TIMEOUT_SECONDS")
    heartbeat_timeout_seconds: float = Field(default=3 * 60.0, alias="HEARTBEAT_TIMEOUT_SECONDS")
    blocks_context_grace_seconds: float = Field(default=90.0, alias="BLOCKS_CONTEXT_GRACE_SECONDS")
    heartbeat_tick_seconds: float = Field(default=15.0, alias="HEARTBEAT_TICK_SECONDS")
    heartbeat_path: Path = Field(
        default=Path.home() / ".apexclaw" / "heartbeat.json",
        alias="HEARTBEAT_PATH",
    )


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def allowed_users(settings: Settings) -> frozenset[str]:
    """Return the set of user ids permitted to talk to the assistant.

    Always includes the owner. Additional ids can be added via the
    ALLOWED_USERS env var as a comma-separated list.
    """
    extra = {u.strip() for u in settings.allowed_users.split(",") if u.strip()}
    return frozenset({settings.owner_id} | extra)
