from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from relay.errors import ConfigError
from relay.schemas import GatewayConfig, TurnDetection


def _settings(**overrides):
    from config.settings import Settings

    return Settings(_env_file=None, **overrides)


def test_missing_api_key_is_config_error() -> None:
    from config.settings import require_openai_api_key

    with pytest.raises(ConfigError):
        require_openai_api_key(_settings(openai_api_key=None))
    assert require_openai_api_key(_settings(openai_api_key="sk-live")) == "sk-live"


def test_legacy_env_names_are_accepted(monkeypatch) -> None:
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
    monkeypatch.delenv("TWILIO_FROM_NUMBER", raising=False)
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15005550006")
    monkeypatch.setenv("SERVER_URL", "https://calls.example.com")

    settings = _settings()

    assert settings.twilio_from_number == "+15005550006"
    assert settings.public_base_url == "https://calls.example.com"


def test_gateway_config_from_settings_builds_session_update() -> None:
    settings = _settings(
        realtime_voice="alloy",
        system_message="Help the caller.",
        vad_silence_duration_ms=700,
    )

    message = GatewayConfig.from_settings(settings).session_update()

    assert message == {
        "type": "session.update",
        "session": {
            "turn_detection": {
                "type": "server_vad",
                "threshold": 0.5,
                "prefix_padding_ms": 300,
                "silence_duration_ms": 700,
            },
            "input_audio_format": "g711_ulaw",
            "output_audio_format": "g711_ulaw",
            "voice": "alloy",
            "instructions": "Help the caller.",
            "modalities": ["text", "audio"],
            "temperature": 0.8,
            "max_response_output_tokens": 1000,
        },
    }


def test_gateway_config_rejects_transcoding() -> None:
    with pytest.raises(ValidationError):
        GatewayConfig(instructions="hi", input_audio_format="pcm16", output_audio_format="g711_ulaw")


def test_gateway_config_is_frozen() -> None:
    config = GatewayConfig(instructions="hi", turn_detection=TurnDetection(threshold=0.6))
    with pytest.raises(ValidationError):
        config.voice = "echo"


def test_startup_refuses_to_run_without_api_key(app, monkeypatch) -> None:
    import main

    monkeypatch.setattr(main, "get_settings", lambda: _settings(openai_api_key=None))

    async def start():
        async with main.lifespan(main.app):
            pass

    with pytest.raises(ConfigError):
        asyncio.run(start())
