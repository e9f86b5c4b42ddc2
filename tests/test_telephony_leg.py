from __future__ import annotations

import asyncio
import json

import pytest
from fakes import FakeTwilioSocket
from starlette.websockets import WebSocketState

from relay.errors import DecodeError, TransportError
from relay.events import ControlEvent, ControlKind, Direction, MediaFrame, TelephonyEvent
from relay.telephony_leg import TelephonyLeg, decode_telephony_message


def test_decode_start_carries_stream_sid() -> None:
    event = decode_telephony_message(json.dumps({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}}))
    assert event == ControlEvent(ControlKind.STREAM_STARTED, {"stream_sid": "MZ1", "call_sid": "CA1"})


def test_decode_media_keeps_payload_untouched() -> None:
    event = decode_telephony_message('{"event": "media", "media": {"track": "inbound", "payload": "f/9+fQ=="}}')
    assert event == MediaFrame(payload="f/9+fQ==", direction=Direction.INBOUND)


def test_decode_stop() -> None:
    event = decode_telephony_message('{"event": "stop", "stop": {"callSid": "CA1"}}')
    assert isinstance(event, ControlEvent)
    assert event.kind is ControlKind.STREAM_STOPPED


def test_decode_other_events_are_informational() -> None:
    event = decode_telephony_message('{"event": "dtmf", "dtmf": {"digit": "1"}}')
    assert isinstance(event, TelephonyEvent)
    assert event.event == "dtmf"


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        '{"media": {"payload": "AAAA"}}',
        '{"event": "media", "media": {}}',
        '{"event": "start", "start": {}}',
    ],
)
def test_decode_malformed_raises(text: str) -> None:
    with pytest.raises(DecodeError) as exc_info:
        decode_telephony_message(text)
    assert exc_info.value.raw == text


def test_events_skip_malformed_frames() -> None:
    reported = []

    async def scenario():
        socket = FakeTwilioSocket()
        leg = TelephonyLeg(socket, on_error=reported.append)
        socket.feed("garbage")
        socket.feed_json({"event": "media", "media": {"payload": "AAAA"}})
        socket.hang_up()
        return [event async for event in leg.events()], leg

    events, leg = asyncio.run(scenario())

    assert events == [MediaFrame(payload="AAAA", direction=Direction.INBOUND)]
    assert isinstance(reported[0], DecodeError)
    assert leg.is_open is False


def test_send_frames_media_message() -> None:
    async def scenario():
        socket = FakeTwilioSocket()
        leg = TelephonyLeg(socket)
        ok = await leg.send(MediaFrame(payload="BBBB", direction=Direction.OUTBOUND, stream_sid="MZ1"))
        return socket, ok

    socket, ok = asyncio.run(scenario())

    assert ok is True
    assert socket.sent == [{"event": "media", "streamSid": "MZ1", "media": {"payload": "BBBB"}}]


def test_send_when_closed_is_reported_not_raised() -> None:
    reported = []

    async def scenario():
        socket = FakeTwilioSocket()
        socket.client_state = WebSocketState.DISCONNECTED
        leg = TelephonyLeg(socket, on_error=reported.append)
        return socket, await leg.send(MediaFrame(payload="BBBB", direction=Direction.OUTBOUND, stream_sid="MZ1"))

    socket, ok = asyncio.run(scenario())

    assert ok is False
    assert socket.sent == []
    assert isinstance(reported[0], TransportError)


def test_close_is_idempotent() -> None:
    async def scenario():
        socket = FakeTwilioSocket()
        leg = TelephonyLeg(socket)
        await leg.close()
        await leg.close()
        return socket, leg

    socket, leg = asyncio.run(scenario())

    assert socket.closed is True
    assert leg.is_open is False


def test_events_skip_binary_frames() -> None:
    reported = []

    async def scenario():
        socket = FakeTwilioSocket()
        leg = TelephonyLeg(socket, on_error=reported.append)
        socket.feed_bytes(b"\x00\x01")
        socket.feed_json({"event": "media", "media": {"payload": "AAAA"}})
        socket.hang_up()
        return [event async for event in leg.events()]

    events = asyncio.run(scenario())

    assert events == [MediaFrame(payload="AAAA", direction=Direction.INBOUND)]
    assert isinstance(reported[0], DecodeError)
    assert reported[0].raw == b"\x00\x01"
