from __future__ import annotations

from dataclasses import dataclass

from config.settings import Settings, get_settings
from relay.errors import ConfigError


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str | None


def get_twilio_config(settings: Settings | None = None) -> TwilioConfig:
    settings = settings or get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ConfigError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ConfigError("Twilio from-number is not configured")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/") if settings.public_base_url else None,
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)
