"""Neutral event types shared by both legs and the session bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ControlKind(str, Enum):
    STREAM_STARTED = "stream-started"
    STREAM_STOPPED = "stream-stopped"
    GATEWAY_SESSION_READY = "gateway-session-ready"
    GATEWAY_SESSION_UPDATED = "gateway-session-updated"
    GENERATION_COMPLETE = "generation-complete"
    ERROR = "error"


AUDIO_DELTA: Final[str] = "response.audio.delta"
CONTENT_DELTA: Final[str] = "response.content.delta"

_GATEWAY_CONTROL_TYPES: Final[dict[str, ControlKind]] = {
    "session.created": ControlKind.GATEWAY_SESSION_READY,
    "session.updated": ControlKind.GATEWAY_SESSION_UPDATED,
    "response.done": ControlKind.GENERATION_COMPLETE,
    "error": ControlKind.ERROR,
}


@dataclass(frozen=True, slots=True)
class MediaFrame:
    """One unit of encoded audio.

    `payload` is the base64 text exactly as it arrived; it is never decoded.
    """

    payload: str
    direction: Direction
    stream_sid: str | None = None


@dataclass(frozen=True, slots=True)
class ControlEvent:
    kind: ControlKind
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TelephonyEvent:
    """A telephony message the relay does not act on (connected, mark, dtmf...)."""

    event: str
    message: dict[str, Any]


@dataclass(frozen=True, slots=True)
class GatewayEvent:
    type: str
    message: dict[str, Any]

    @property
    def control(self) -> ControlEvent | None:
        kind = _GATEWAY_CONTROL_TYPES.get(self.type)
        if kind is None:
            return None
        return ControlEvent(kind=kind, payload=self.message)

    @property
    def audio_delta(self) -> str | None:
        if self.type != AUDIO_DELTA:
            return None
        delta = self.message.get("delta")
        if isinstance(delta, str) and delta:
            return delta
        return None

    @property
    def text_delta(self) -> str | None:
        if self.type != CONTENT_DELTA:
            return None
        delta = self.message.get("delta")
        if isinstance(delta, dict):
            text = delta.get("text")
            if isinstance(text, str) and text:
                return text
        return None


TelephonyMessage = MediaFrame | ControlEvent | TelephonyEvent
