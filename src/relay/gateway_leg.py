"""OpenAI Realtime API side of a call.

We dial the gateway over WebSocket, send one `session.update`, then append
caller audio with `input_audio_buffer.append` and read events discriminated
by `type`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.protocol import State

from relay.errors import DecodeError, RelayError, TransportError
from relay.events import GatewayEvent
from relay.schemas import GatewayConfig

if TYPE_CHECKING:  # pragma: no cover
    from config.settings import Settings

LOGGER = logging.getLogger(__name__)

LEG_NAME = "gateway"

ErrorHook = Callable[[RelayError], None]


def _log_error(exc: RelayError) -> None:
    if isinstance(exc, DecodeError):
        LOGGER.warning("Error processing gateway message: %s Raw message: %r", exc.detail, exc.raw)
    else:
        LOGGER.warning("%s on gateway leg: %s", type(exc).__name__, exc.detail)


def realtime_url(base_url: str, model: str) -> str:
    return f"{base_url}?{urlencode({'model': model})}"


def decode_gateway_message(raw: str | bytes) -> GatewayEvent:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Invalid JSON from gateway: {exc}", raw=raw) from exc

    if not isinstance(data, dict):
        raise DecodeError("Gateway message is not an object.", raw=raw)

    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise DecodeError("Gateway message has no type.", raw=raw)

    return GatewayEvent(type=event_type, message=data)


def encode_audio_append(payload: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload}


class GatewayLeg:
    """Client connection to the realtime gateway for one call."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        beta_header: str = "realtime=v1",
        open_timeout: float | None = None,
        connector: Callable[..., Any] = websockets.connect,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._beta_header = beta_header
        self._open_timeout = open_timeout
        self._connector = connector
        self._ws = None
        self._configured = False
        self.on_error: ErrorHook = on_error or _log_error

    @classmethod
    def from_settings(cls, settings: Settings, api_key: str) -> GatewayLeg:
        return cls(
            realtime_url(settings.openai_realtime_url, settings.openai_realtime_model),
            api_key,
            beta_header=settings.openai_beta_header,
            open_timeout=settings.gateway_open_timeout,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": self._beta_header,
        }

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    @property
    def is_ready(self) -> bool:
        """True once the connection is open and the session configuration was sent."""

        return self._configured and self.is_open

    async def connect(self) -> None:
        try:
            self._ws = await self._connector(
                self._url,
                additional_headers=self.headers,
                open_timeout=self._open_timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise TransportError(f"Could not connect to realtime gateway: {exc}", leg=LEG_NAME) from exc
        LOGGER.info("Connected to the realtime gateway")

    async def send_config(self, config: GatewayConfig) -> None:
        message = config.session_update()
        LOGGER.debug("Sending session update: %s", message)
        await self._send(message)
        self._configured = True

    async def append_audio(self, payload: str) -> bool:
        if not self.is_ready:
            self.on_error(TransportError("Gateway not ready; caller audio dropped.", leg=LEG_NAME))
            return False
        await self._send(encode_audio_append(payload))
        return True

    async def events(self) -> AsyncIterator[GatewayEvent]:
        if self._ws is None:
            raise TransportError("Gateway leg is not connected.", leg=LEG_NAME)

        try:
            async for raw in self._ws:
                try:
                    yield decode_gateway_message(raw)
                except DecodeError as exc:
                    self.on_error(exc)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            raise TransportError(f"Gateway connection lost: {exc}", leg=LEG_NAME) from exc
        LOGGER.info("Disconnected from the realtime gateway")

    async def close(self) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.close()
        except (OSError, WebSocketException) as exc:
            LOGGER.debug("Gateway close ignored: %s", exc)

    async def _send(self, message: dict[str, Any]) -> None:
        if self._ws is None or not self.is_open:
            raise TransportError("Gateway leg is not open.", leg=LEG_NAME)
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise TransportError(f"Gateway send failed: {exc}", leg=LEG_NAME) from exc
