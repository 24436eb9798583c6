"""Application settings loaded from the environment."""

import secrets
from functools import lru_cache
from typing import Annotated, List, Literal, Optional

import structlog
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Runtime configuration for the backend and the client core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    google_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("google_api_key", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
    )
    gemini_model: str = "gemini-2.5-flash"
    request_timeout: float = 30.0
    jwt_secret: str = ""
    jwt_expire_minutes: int = 60 * 24 * 7
    response_format: Literal["segments", "legacy"] = "segments"
    response_logo_label: bool = False
    cors_origins: Annotated[List[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        # CORS_ORIGINS=http://a.example,http://b.example
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @model_validator(mode="after")
    def _ensure_jwt_secret(self) -> "Settings":
        if not self.jwt_secret:
            # Tokens issued with a generated secret do not survive a restart
            self.jwt_secret = secrets.token_urlsafe(32)
            logger.warning("jwt_secret_generated")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
