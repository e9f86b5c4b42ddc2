from __future__ import annotations

import json
import time

import pytest
from fakes import FakeConnector
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from websockets.protocol import State

from integrations.twilio_client import TwilioConfig
from relay.gateway_leg import GatewayLeg


class FakeTwilioCall:
    def __init__(self, sid: str) -> None:
        self.sid = sid


class FakeTwilioCalls:
    def __init__(self) -> None:
        self.created: list[dict] = []

    def create(self, *, to: str, from_: str, url: str, record: bool):
        self.created.append({"to": to, "from_": from_, "url": url, "record": record})
        return FakeTwilioCall("CA123")


class FakeTwilioClient:
    def __init__(self) -> None:
        self.calls = FakeTwilioCalls()


def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def test_root_and_health(client) -> None:
    assert client.get("/").json() == {"message": "Twilio Media Stream Server is running!"}

    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "active_sessions": 0}


@pytest.mark.parametrize("path", ["/api/twilio/incoming-call", "/api/twilio/outgoing-call-handler"])
def test_call_webhooks_connect_media_stream(client, path: str) -> None:
    resp = client.post(path, data={"CallSid": "CA111"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/xml")
    assert '<Stream url="wss://relay.example.com/api/twilio/media-stream" />' in resp.text
    assert 'recordingStatusCallback="https://relay.example.com/api/twilio/recording-status"' in resp.text

    assert client.get(path).status_code == 200


def test_outgoing_call_places_call(app) -> None:
    import api.twilio_routes as twilio_routes

    fake_client = FakeTwilioClient()
    app.dependency_overrides[twilio_routes.get_twilio_client] = lambda: fake_client
    app.dependency_overrides[twilio_routes.get_twilio_cfg] = lambda: TwilioConfig(
        account_sid="AC123",
        auth_token="token",
        from_number="+15005550006",
        public_base_url="https://relay.example.com",
    )

    with TestClient(app) as client:
        resp = client.post("/api/twilio/outgoing-call", json={"to": "+15551234567"})
        missing = client.post("/api/twilio/outgoing-call", json={})
    app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json() == {"message": "Outgoing call initiated", "call_sid": "CA123"}
    assert fake_client.calls.created == [
        {
            "to": "+15551234567",
            "from_": "+15005550006",
            "url": "https://relay.example.com/api/twilio/outgoing-call-handler",
            "record": True,
        }
    ]
    assert missing.status_code == 400


def test_outgoing_call_without_twilio_config_is_503(client) -> None:
    resp = client.post("/api/twilio/outgoing-call", json={"to": "+15551234567"})
    assert resp.status_code == 503


def test_recording_callbacks_acknowledge(client) -> None:
    status = client.post("/api/twilio/recording-status", data={"RecordingStatus": "completed"})
    done = client.post("/api/twilio/recording-callback", data={"RecordingSid": "RE1"})

    assert status.json() == {"status": "received"}
    assert done.json() == {"status": "success"}


def test_media_stream_relays_caller_audio_to_gateway(app) -> None:
    import api.dependencies as deps

    connector = FakeConnector()
    app.dependency_overrides[deps.get_gateway_factory] = lambda: (
        lambda: GatewayLeg("wss://gateway.test/v1/realtime?model=m", "sk-test", connector=connector)
    )
    sent = connector.socket.sent

    with TestClient(app) as client:
        with client.websocket_connect("/api/twilio/media-stream") as ws:
            ws.send_text(json.dumps({"event": "connected", "protocol": "Call"}))
            ws.send_text(json.dumps({"event": "start", "start": {"streamSid": "SS1"}}))
            _wait_for(lambda: len(sent) >= 1)
            ws.send_text(json.dumps({"event": "media", "media": {"payload": "AAAA"}}))
            _wait_for(lambda: len(sent) >= 2)
            ws.send_text(json.dumps({"event": "stop"}))
            with pytest.raises(WebSocketDisconnect):
                ws.receive_text()
    app.dependency_overrides.clear()

    assert sent[0]["type"] == "session.update"
    assert sent[1] == {"type": "input_audio_buffer.append", "audio": "AAAA"}
    assert connector.socket.state is State.CLOSED
