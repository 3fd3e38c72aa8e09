from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "mentor-relay"
    log_level: str = "INFO"
    log_json: bool = True
    host: str = "0.0.0.0"
    port: int = 4000

    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("telegram_chat_id", "TELEGRAM_CHAT_ID", "MENTOR_CHAT_ID"),
    )
    telegram_webhook_url: str | None = None
    telegram_webhook_secret: str | None = None

    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    rate_limit_max_requests: int = Field(default=10, ge=1)
    rate_limit_window_seconds: float = Field(default=300.0, gt=0)

    @field_validator(
        "telegram_bot_token",
        "telegram_chat_id",
        "telegram_webhook_url",
        "telegram_webhook_secret",
        mode="before",
    )
    @classmethod
    def _strip_env_strings(cls, value: object) -> object:
        if isinstance(value, str):
            trimmed = value.strip()
            return trimmed or None
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> list[str]:
        if value is None:
            return ["*"]
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",") if item.strip()]
            return items or ["*"]
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError("Invalid CORS_ORIGINS value")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
