"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORAGE_BACKENDS: tuple[str, ...] = ("sqlite", "memory")


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Streamlist", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    storage_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite", alias="STORAGE_BACKEND"
    )
    database_url: str = Field(
        default="sqlite:///./streamlist.db", alias="DATABASE_URL"
    )
    storage_quota_bytes: int | None = Field(
        default=None, alias="STORAGE_QUOTA_BYTES", ge=1_024
    )

    auth_latency_seconds: float = Field(
        default=0.0, alias="AUTH_LATENCY_SECONDS", ge=0.0, le=10.0
    )
    verify_passwords: bool = Field(default=False, alias="VERIFY_PASSWORDS")
    password_hash_iterations: int = Field(
        default=260_000, alias="PASSWORD_HASH_ITERATIONS", ge=1_000
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_region: str | None = Field(default=None, alias="TMDB_REGION")

    wishlist_recent_limit: int = Field(
        default=10, alias="WISHLIST_RECENT_LIMIT", ge=1, le=100
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("storage_backend", mode="before")
    @classmethod
    def _normalise_backend(cls, value: object) -> object:
        """Accept backend names case-insensitively, defaulting blanks to SQLite."""

        if value is None:
            return "sqlite"
        if isinstance(value, str):
            cleaned = value.strip().lower()
            if not cleaned:
                return "sqlite"
            if cleaned == "sqlite3":
                cleaned = "sqlite"
            if cleaned not in STORAGE_BACKENDS:
                raise ValueError("Unknown storage backend configured")
            return cleaned
        return value

    @field_validator(
        "tmdb_api_key", "tmdb_region", "storage_quota_bytes", mode="before"
    )
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
