"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # ElevenLabs Conversational AI
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_agent_id: str | None = Field(default=None)
    elevenlabs_api_base_url: str = Field(
        default="https://api.elevenlabs.io",
        description="Base URL used to request signed conversation URLs.",
    )
    elevenlabs_request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Agent overrides used when the call carries no custom parameters
    default_agent_prompt: str = Field(default="You are Gary from the phone store.")
    default_first_message: str = Field(default="Hey there! How can I help you today?")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_from_number", "twilio_phone_number"),
        description="E.164, e.g. +1415...",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
