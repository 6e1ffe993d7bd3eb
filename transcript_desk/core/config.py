"""
Transcript Desk Core Configuration

This module manages all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from typing import Literal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    api_prefix: str = "/api/v1"

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./transcript_desk.db")
    db_echo: bool = False
    db_create_all: bool = True

    # Editor session tokens
    jwt_secret_key: str = Field(
        default="dev-only-transcript-desk-secret-change-me", min_length=32
    )
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Chunked storage
    default_chunk_bytes: int = 30000
    max_chunks_per_transcript: int = 100

    # Store retries (chunk paths only)
    store_retry_attempts: int = 3
    store_retry_min_wait: float = 0.5
    store_retry_max_wait: float = 8.0

    # Standing confirmation preferences for destructive segment operations
    confirm_split: bool = True
    confirm_merge: bool = True
    confirm_delete: bool = True

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
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Parse CORS origins from string, list, or JSON string"""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            import json
            if isinstance(v, str):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    return [v]
            return v
        return ["*"]

    @field_validator("default_chunk_bytes", "max_chunks_per_transcript", "store_retry_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be a positive integer")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache for singleton pattern.
    """
    return Settings()


# Export singleton instance
settings = get_settings()
