"""Pydantic models for the realtime gateway session configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:  # pragma: no cover
    from config.settings import Settings

Modality = Literal["text", "audio"]


class TurnDetection(BaseModel):
    """Server-side voice activity detection policy."""

    model_config = ConfigDict(frozen=True)

    type: Literal["server_vad"] = "server_vad"
    threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    prefix_padding_ms: int = Field(default=300, ge=0)
    silence_duration_ms: int = Field(default=500, ge=0)


class GatewayConfig(BaseModel):
    """Parameters sent once with `session.update` when the gateway leg opens."""

    model_config = ConfigDict(frozen=True)

    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"
    voice: str = "shimmer"
    instructions: str
    modalities: tuple[Modality, ...] = ("text", "audio")
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    max_response_output_tokens: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def formats_match(self) -> GatewayConfig:
        # Audio is relayed untouched in both directions.
        if self.input_audio_format != self.output_audio_format:
            raise ValueError("Input and output audio formats must match.")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> GatewayConfig:
        return cls(
            turn_detection=TurnDetection(
                threshold=settings.vad_threshold,
                prefix_padding_ms=settings.vad_prefix_padding_ms,
                silence_duration_ms=settings.vad_silence_duration_ms,
            ),
            input_audio_format=settings.realtime_audio_format,
            output_audio_format=settings.realtime_audio_format,
            voice=settings.realtime_voice,
            instructions=settings.system_message,
            temperature=settings.realtime_temperature,
            max_response_output_tokens=settings.realtime_max_output_tokens,
        )

    def session_update(self) -> dict[str, Any]:
        return {"type": "session.update", "session": self.model_dump(mode="json")}
