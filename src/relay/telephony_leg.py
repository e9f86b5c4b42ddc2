"""Twilio Media Streams side of a call.

Twilio connects to us and sends JSON text frames discriminated by `event`:
`connected`, `start` (carries `streamSid`), `media` (base64 mu-law payload),
`mark` and `stop`. We answer with `media` frames addressed by `streamSid`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from relay.errors import DecodeError, RelayError, TransportError
from relay.events import ControlEvent, ControlKind, Direction, MediaFrame, TelephonyEvent, TelephonyMessage

LOGGER = logging.getLogger(__name__)

LEG_NAME = "telephony"

ErrorHook = Callable[[RelayError], None]


def _log_error(exc: RelayError) -> None:
    LOGGER.warning("%s on telephony leg: %s", type(exc).__name__, exc.detail)


def decode_telephony_message(text: str | bytes) -> TelephonyMessage:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Invalid JSON from telephony leg: {exc}", raw=text) from exc

    if not isinstance(data, dict):
        raise DecodeError("Telephony message is not an object.", raw=text)

    event = data.get("event")
    if not isinstance(event, str) or not event:
        raise DecodeError("Telephony message has no event discriminator.", raw=text)

    if event == "media":
        media = data.get("media")
        payload = media.get("payload") if isinstance(media, dict) else None
        if not isinstance(payload, str):
            raise DecodeError("Media event without payload.", raw=text)
        return MediaFrame(payload=payload, direction=Direction.INBOUND)

    if event == "start":
        start = data.get("start")
        stream_sid = start.get("streamSid") if isinstance(start, dict) else None
        if not isinstance(stream_sid, str) or not stream_sid:
            raise DecodeError("Start event without streamSid.", raw=text)
        return ControlEvent(
            kind=ControlKind.STREAM_STARTED,
            payload={"stream_sid": stream_sid, "call_sid": start.get("callSid")},
        )

    if event == "stop":
        return ControlEvent(kind=ControlKind.STREAM_STOPPED, payload=data.get("stop") or {})

    return TelephonyEvent(event=event, message=data)


def encode_media_frame(frame: MediaFrame) -> dict[str, Any]:
    return {
        "event": "media",
        "streamSid": frame.stream_sid,
        "media": {"payload": frame.payload},
    }


class TelephonyLeg:
    """Adapter around the WebSocket accepted from Twilio."""

    def __init__(self, websocket: WebSocket, *, on_error: ErrorHook | None = None) -> None:
        self._websocket = websocket
        self._closed = False
        self.on_error: ErrorHook = on_error or _log_error

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def events(self) -> AsyncIterator[TelephonyMessage]:
        """Yield decoded events until Twilio hangs up.

        Malformed and non-text frames are reported and skipped.
        """

        try:
            while True:
                message = await self._websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return
                text = message.get("text")
                try:
                    if text is None:
                        raise DecodeError("Non-text frame from telephony leg.", raw=message.get("bytes"))
                    event = decode_telephony_message(text)
                except DecodeError as exc:
                    self.on_error(exc)
                    continue
                yield event
        except RuntimeError as exc:
            if self._closed:
                return
            raise TransportError(f"Telephony receive failed: {exc}", leg=LEG_NAME) from exc
        finally:
            self._closed = True

    async def send(self, frame: MediaFrame) -> bool:
        if not self.is_open:
            self.on_error(TransportError("Telephony leg is not open; frame dropped.", leg=LEG_NAME))
            return False

        try:
            await self._websocket.send_text(json.dumps(encode_media_frame(frame)))
        except (WebSocketDisconnect, RuntimeError) as exc:
            self._closed = True
            raise TransportError(f"Telephony send failed: {exc}", leg=LEG_NAME) from exc
        return True

    async def close(self) -> None:
        self._closed = True
        if (
            self._websocket.application_state != WebSocketState.CONNECTED
            or self._websocket.client_state != WebSocketState.CONNECTED
        ):
            return
        try:
            await self._websocket.close()
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            LOGGER.debug("Telephony close ignored: %s", exc)
