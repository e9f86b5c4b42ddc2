"""Place an outbound call that connects the callee to the voice agent.

Usage: python -m integrations.outbound_call [--to +15551234567]
"""

from __future__ import annotations

import argparse
import logging
import sys

from config.settings import get_settings
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config
from relay.errors import ConfigError

LOGGER = logging.getLogger(__name__)

OUTGOING_HANDLER_PATH = "/api/twilio/outgoing-call-handler"


def place_call(client, cfg: TwilioConfig, to_number: str, *, record: bool = True):
    if not cfg.public_base_url:
        raise ConfigError("PUBLIC_BASE_URL (or SERVER_URL) is required to place outbound calls")

    return client.calls.create(
        url=f"{cfg.public_base_url}{OUTGOING_HANDLER_PATH}",
        to=to_number,
        from_=cfg.from_number,
        record=record,
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Call a phone number and connect it to the voice agent")
    parser.add_argument("--to", help="E.164 number to call, e.g. +1234567890. Prompted for when omitted.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    args = _parse_args(argv)

    try:
        cfg = get_twilio_config(settings)
    except ConfigError as exc:
        print(f"{exc.detail}. Please check your .env file.", file=sys.stderr)
        return 1

    to_number = args.to or input("Enter the phone number to call (in E.164 format, e.g., +1234567890): ")
    to_number = to_number.strip()
    if not to_number:
        print("No phone number given.", file=sys.stderr)
        return 1

    from twilio.base.exceptions import TwilioRestException

    try:
        call = place_call(build_twilio_client(cfg), cfg, to_number, record=settings.twilio_record_calls)
    except (ConfigError, TwilioRestException) as exc:
        LOGGER.error("Error initiating outgoing call: %s", exc)
        return 1

    print(f"Outgoing call initiated. Call SID: {call.sid}")
    print(f"Call status: {call.status}")
    print(f"Call to: {call.to}")
    print(f"Call from: {call.from_}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
