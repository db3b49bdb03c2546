"""Application configuration loading via Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from app.paths import STORAGE_DIR


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    storage_dir: Path = Field(default=STORAGE_DIR, alias="STORAGE_DIR")
    data_file: str = Field(default="data.json", alias="DATA_FILE")
    default_channel: str = Field(default="default", alias="DEFAULT_CHANNEL")
    streamer_name: str = Field(default="Mango", alias="STREAMER_NAME")
    request_rate_limit_per_minute: int = Field(default=120, alias="REQUEST_RATE_LIMIT_PER_MINUTE")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("default_channel")
    @classmethod
    def normalize_default_channel(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("DEFAULT_CHANNEL must not be blank")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def data_path(self) -> Path:
        """Return the location of the persisted counter snapshot."""

        return self.storage_dir / self.data_file


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    settings = Settings()
    settings.storage_dir.mkdir(parents=True, exist_ok=True)
    return settings
