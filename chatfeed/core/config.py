"""
chatfeed settings

Everything tunable comes from the environment (or a local .env file) through
pydantic-settings. Import the `settings` instance; `get_settings()` is the
cached constructor behind it.
"""

import json
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Runtime
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"

    # Storage
    database_url: str = "sqlite+aiosqlite:///./chatfeed.db"
    db_echo: bool = False

    # Change notifications: LOCAL keeps them in-process, REDIS fans out
    # across workers over pub/sub
    change_bus: Literal["REDIS", "LOCAL"] = "LOCAL"
    redis_url: str = "redis://localhost:6379/0"
    redis_db: int = 0

    # Bearer tokens
    jwt_secret_key: str = Field(
        default="dev-secret-key-change-me-please-0123456789", min_length=32
    )
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60, gt=0)

    # Image attachments
    blob_base_url: str = "http://localhost:9000/chat-images"
    blob_api_key: Optional[str] = None

    # Message window behaviour
    page_size: int = Field(default=30, ge=1, le=100)
    near_bottom_threshold: float = Field(default=150, ge=0)
    near_top_threshold: float = Field(default=60, ge=0)
    load_older_timeout: float = Field(default=15.0, gt=0)
    edit_window_minutes: int = Field(default=15, ge=0)
    image_preview_text: str = "[image]"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]
    cors_credentials: bool = True
    cors_methods: list[str] = ["*"]
    cors_headers: list[str] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_cors_origins(cls, v):
        """Accept a JSON list or a comma separated string."""
        if not isinstance(v, str):
            return v
        if v.startswith("["):
            return json.loads(v)
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @field_validator("change_bus", mode="before")
    @classmethod
    def normalize_change_bus(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def use_redis_bus(self) -> bool:
        return self.change_bus == "REDIS"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
