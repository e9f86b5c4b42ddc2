"""Twilio Voice integration.

This module provides:
- TwiML for inbound and outbound calls that connects the call to a Media Stream.
- The Media Stream WebSocket, relayed to the realtime gateway.
- An endpoint to place outbound calls and the recording-status callbacks.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket
from pydantic import BaseModel, Field

from api.dependencies import GatewayFactory, get_gateway_config, get_gateway_factory
from config.settings import get_settings
from integrations.outbound_call import place_call
from integrations.twilio_client import build_twilio_client, get_twilio_config
from relay.bridge import SessionBridge
from relay.errors import ConfigError
from relay.schemas import GatewayConfig
from relay.telephony_leg import TelephonyLeg

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _public_base(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return f"https://{request.headers.get('host', request.url.netloc)}"


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_response(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")


def _twiml_connect_stream(*, stream_url: str, status_callback_url: str, record: bool) -> str:
    record_attrs = ""
    if record:
        record_attrs = (
            f" record=\"true\" recordingStatusCallback={quoteattr(status_callback_url)}"
            " recordingStatusCallbackMethod=\"POST\""
        )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Connect{record_attrs}>"
        f"<Stream url=\"{escape(stream_url)}\" />"
        "</Connect>"
        "</Response>"
    )


def _stream_twiml(request: Request) -> Response:
    base = _public_base(request)
    return _twiml_response(
        _twiml_connect_stream(
            stream_url=_to_ws_url(f"{base}/api/twilio/media-stream"),
            status_callback_url=f"{base}/api/twilio/recording-status",
            record=get_settings().twilio_record_calls,
        )
    )


@router.api_route("/incoming-call", methods=["GET", "POST"])
async def twilio_incoming_call(request: Request) -> Response:
    return _stream_twiml(request)


@router.api_route("/outgoing-call-handler", methods=["GET", "POST"])
async def twilio_outgoing_call_handler(request: Request) -> Response:
    LOGGER.info("Received request for outgoing call handler")
    return _stream_twiml(request)


@router.websocket("/media-stream")
async def twilio_media_stream(
    websocket: WebSocket,
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    config: GatewayConfig = Depends(get_gateway_config),
) -> None:
    await websocket.accept()
    LOGGER.info("WebSocket connection established for media stream")

    bridge = SessionBridge(TelephonyLeg(websocket), gateway_factory(), config)
    await bridge.run()
    LOGGER.info("Client disconnected (%s)", bridge.close_reason)


class OutgoingCallRequest(BaseModel):
    to: str | None = Field(default=None, description="E.164 phone number, e.g. +1555...")


class OutgoingCallResponse(BaseModel):
    message: str = "Outgoing call initiated"
    call_sid: str


def get_twilio_client():
    try:
        return build_twilio_client()
    except ConfigError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


def get_twilio_cfg():
    try:
        return get_twilio_config()
    except ConfigError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post("/outgoing-call", response_model=OutgoingCallResponse)
async def create_outgoing_call(
    payload: OutgoingCallRequest,
    request: Request,
    twilio_client=Depends(get_twilio_client),
    cfg=Depends(get_twilio_cfg),
) -> OutgoingCallResponse:
    if not payload.to:
        raise HTTPException(status_code=400, detail="Missing \"to\" phone number")

    from twilio.base.exceptions import TwilioRestException

    if not cfg.public_base_url:
        cfg = replace(cfg, public_base_url=_public_base(request))

    try:
        call = place_call(twilio_client, cfg, payload.to, record=get_settings().twilio_record_calls)
    except TwilioRestException as exc:
        LOGGER.error("Error initiating outgoing call: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to initiate outgoing call") from exc

    return OutgoingCallResponse(call_sid=str(call.sid))


@router.post("/recording-callback")
async def twilio_recording_callback(request: Request) -> dict[str, str]:
    form = await request.form()
    LOGGER.info("Recording completed: %s", dict(form))
    return {"status": "success"}


@router.post("/recording-status")
async def twilio_recording_status(request: Request) -> dict[str, str]:
    form = await request.form()
    LOGGER.info("Recording status update: %s", dict(form))
    return {"status": "received"}
