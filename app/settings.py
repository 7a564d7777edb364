from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3001, validation_alias="PORT")
    environment: str = Field(default="development", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    user_agent: str = Field(default="monson/0.1", validation_alias="USER_AGENT")

    twitter_bearer_token: str | None = Field(
        default=None, validation_alias="TWITTER_BEARER_TOKEN"
    )
    news_api_key: str | None = Field(default=None, validation_alias="NEWS_API_KEY")

    feeds_dir: Path = Field(
        default=Path(__file__).resolve().parents[1] / "feeds",
        validation_alias="FEEDS_DIR",
    )

    cache_ttl_seconds: float = Field(default=300.0, validation_alias="CACHE_TTL_SECONDS")
    headline_max_length: int = Field(
        default=50, ge=4, validation_alias="HEADLINE_MAX_LENGTH"
    )
    max_events: int | None = Field(default=None, validation_alias="MAX_EVENTS")
    adapter_timeout_seconds: float = Field(
        default=20.0, validation_alias="ADAPTER_TIMEOUT_SECONDS"
    )
