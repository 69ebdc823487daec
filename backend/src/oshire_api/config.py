from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DataSource = Literal["live", "fixture"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    github_token: Optional[str] = Field(default=None, alias="GITHUB_TOKEN")
    database_url: str = Field(default="sqlite+aiosqlite:///./data.db", alias="DATABASE_URL")
    data_source: DataSource = Field(default="live", alias="DATA_SOURCE")
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")
    github_api_version: str = Field(default="2022-11-28", alias="GITHUB_API_VERSION")
    github_timeout_seconds: float = Field(default=30.0, alias="GITHUB_TIMEOUT_SECONDS")

    @property
    def fallback_token(self) -> Optional[str]:
        token = (self.github_token or "").strip()
        return token or None

    @property
    def use_fixtures(self) -> bool:
        return self.data_source == "fixture"


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
