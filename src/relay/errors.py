"""Error taxonomy for the media relay.

Per-message errors (decode failures, protocol violations) are reported and the
offending message dropped. Transport errors end the affected session only.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"
    fatal: bool = False

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class TransportError(RelayError):
    status_code = 502
    default_detail = "Connection failure."
    fatal = True

    def __init__(self, detail: str | None = None, *, leg: str | None = None) -> None:
        super().__init__(detail)
        self.leg = leg


class DecodeError(RelayError):
    status_code = 400
    default_detail = "Malformed message."

    def __init__(self, detail: str | None = None, *, raw: Any = None) -> None:
        super().__init__(detail)
        # Kept for diagnostics.
        self.raw = raw


class ProtocolViolation(RelayError):
    status_code = 409
    default_detail = "Message not allowed in the current session state."


class ConfigError(RelayError):
    status_code = 503
    default_detail = "Required configuration is missing."
    fatal = True
