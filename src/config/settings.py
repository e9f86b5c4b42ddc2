"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay.errors import ConfigError

DEFAULT_SYSTEM_MESSAGE = (
    "You are a friendly and efficient phone assistant. Greet the caller, ask for their name "
    "and use it once you have it. Keep answers short and conversational, ask one question "
    "at a time and wait for the caller to respond."
)


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5050)

    # Realtime gateway
    openai_api_key: str | None = Field(default=None, description="Bearer credential for the Realtime API.")
    openai_realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    openai_realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-10-01")
    openai_beta_header: str = Field(default="realtime=v1")
    gateway_open_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for the gateway handshake. Unset means wait indefinitely.",
    )

    # Realtime session (sent once with session.update)
    realtime_voice: str = Field(default="shimmer")
    system_message: str = Field(default=DEFAULT_SYSTEM_MESSAGE)
    realtime_temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    realtime_max_output_tokens: int = Field(default=1000, gt=0)
    realtime_audio_format: str = Field(
        default="g711_ulaw",
        description="Must match the Twilio Media Streams codec; audio is never transcoded.",
    )
    vad_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    vad_prefix_padding_ms: int = Field(default=300, ge=0)
    vad_silence_duration_ms: int = Field(default=500, ge=0)

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_from_number", "twilio_phone_number"),
        description="E.164, e.g. +1555...",
    )
    public_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("public_base_url", "server_url"),
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_record_calls: bool = Field(default=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()


def require_openai_api_key(settings: Settings) -> str:
    if not settings.openai_api_key:
        raise ConfigError("Missing OpenAI API key. Set OPENAI_API_KEY in the environment or .env file.")
    return settings.openai_api_key
