"""Session bridge: pairs one telephony leg with one gateway leg for one call.

Two listener tasks feed a single queue. Everything that touches the session
(state, stream identifier, forwarding) happens in `run()` while draining that
queue, one item at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Final, Protocol

from relay.classifier import EventClassifier
from relay.errors import DecodeError, ProtocolViolation, RelayError, TransportError
from relay.events import (
    AUDIO_DELTA,
    ControlEvent,
    ControlKind,
    Direction,
    GatewayEvent,
    MediaFrame,
    TelephonyEvent,
    TelephonyMessage,
)
from relay.schemas import GatewayConfig
from relay.session import ACTIVE_SESSIONS, Session, SessionRegistry, SessionState

LOGGER = logging.getLogger(__name__)

TELEPHONY: Final[str] = "telephony"
GATEWAY: Final[str] = "gateway"

MAX_REPORTED: Final[int] = 100


class TelephonyPort(Protocol):
    on_error: Any

    @property
    def is_open(self) -> bool: ...

    def events(self) -> AsyncIterator[TelephonyMessage]: ...

    async def send(self, frame: MediaFrame) -> bool: ...

    async def close(self) -> None: ...


class GatewayPort(Protocol):
    on_error: Any

    @property
    def is_open(self) -> bool: ...

    async def connect(self) -> None: ...

    async def send_config(self, config: GatewayConfig) -> None: ...

    async def append_audio(self, payload: str) -> bool: ...

    def events(self) -> AsyncIterator[GatewayEvent]: ...

    async def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class _LegOpened:
    pass


@dataclass(frozen=True, slots=True)
class _LegClosed:
    error: TransportError | None = None


def _listener_failure(leg: str, exc: Exception) -> TransportError:
    return TransportError(f"{leg} listener failed: {type(exc).__name__}: {exc}", leg=leg)


class SessionBridge:
    """Relays audio and control events between Twilio and the realtime gateway."""

    def __init__(
        self,
        telephony: TelephonyPort,
        gateway: GatewayPort,
        config: GatewayConfig,
        *,
        classifier: EventClassifier | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.session = Session()
        self._telephony = telephony
        self._gateway = gateway
        self._config = config
        self._classifier = classifier or EventClassifier()
        self._registry = registry if registry is not None else ACTIVE_SESSIONS
        self._inbox: asyncio.Queue[tuple[str, Any]] | None = None
        self._tasks: list[asyncio.Task] = []
        self.reported: deque[RelayError] = deque(maxlen=MAX_REPORTED)
        self.close_reason: str | None = None

        telephony.on_error = self._report
        gateway.on_error = self._report

    @property
    def state(self) -> SessionState:
        return self.session.state

    async def run(self) -> None:
        """Relay until either leg ends, then close both legs."""

        self._inbox = asyncio.Queue()
        self._registry.add(self.session)
        LOGGER.info("Session %s: connecting to realtime gateway", self.session.session_id)

        self._tasks = [
            asyncio.create_task(self._pump(TELEPHONY, self._telephony.events()), name="relay-telephony"),
            asyncio.create_task(self._dial_gateway(), name="relay-gateway"),
        ]
        try:
            while self.session.state is not SessionState.CLOSING:
                leg, item = await self._inbox.get()
                await self._dispatch(leg, item)
        finally:
            await self._shutdown()

    def _report(self, exc: RelayError) -> None:
        self.reported.append(exc)
        LOGGER.log(
            logging.ERROR if exc.fatal else logging.WARNING,
            "Session %s: %s: %s",
            self.session.session_id,
            type(exc).__name__,
            exc.detail,
        )

    async def _dial_gateway(self) -> None:
        assert self._inbox is not None
        try:
            await self._gateway.connect()
        except TransportError as exc:
            await self._inbox.put((GATEWAY, _LegClosed(exc)))
            return
        except Exception as exc:
            LOGGER.exception("Session %s: gateway connect crashed", self.session.session_id)
            await self._inbox.put((GATEWAY, _LegClosed(_listener_failure(GATEWAY, exc))))
            return
        await self._inbox.put((GATEWAY, _LegOpened()))
        await self._pump(GATEWAY, self._gateway.events())

    async def _pump(self, leg: str, events: AsyncIterator[Any]) -> None:
        assert self._inbox is not None
        error: TransportError | None = None
        try:
            async for event in events:
                await self._inbox.put((leg, event))
        except TransportError as exc:
            error = exc
        except Exception as exc:
            LOGGER.exception("Session %s: %s listener crashed", self.session.session_id, leg)
            error = _listener_failure(leg, exc)
        await self._inbox.put((leg, _LegClosed(error)))

    async def _dispatch(self, leg: str, item: Any) -> None:
        if isinstance(item, _LegClosed):
            self._begin_closing(leg, item.error)
            return

        try:
            if isinstance(item, _LegOpened):
                await self._on_gateway_open()
            elif leg == TELEPHONY:
                await self._on_telephony(item)
            else:
                await self._on_gateway(item)
        except RelayError as exc:
            if not exc.fatal:
                self._report(exc)
                return
            self._begin_closing(getattr(exc, "leg", None) or leg, exc)

    def _begin_closing(self, leg: str, error: RelayError | None) -> None:
        if self.session.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        if error is not None:
            self._report(error)
            self.close_reason = f"{leg} error"
        elif self.close_reason is None:
            self.close_reason = f"{leg} closed"
        LOGGER.info("Session %s: %s, closing", self.session.session_id, self.close_reason)
        self.session.transition(SessionState.CLOSING)

    async def _on_gateway_open(self) -> None:
        if self.session.state is not SessionState.CONNECTING:
            return
        self.session.transition(SessionState.NEGOTIATING)
        await self._gateway.send_config(self._config)

    async def _on_telephony(self, item: TelephonyMessage) -> None:
        if isinstance(item, MediaFrame):
            await self._forward_caller_audio(item)
        elif isinstance(item, ControlEvent):
            if item.kind is ControlKind.STREAM_STARTED:
                self._bind_stream(item)
            elif item.kind is ControlKind.STREAM_STOPPED:
                LOGGER.info("Session %s: stream stopped", self.session.session_id)
                self.close_reason = "stream stopped"
                self._begin_closing(TELEPHONY, None)
        elif isinstance(item, TelephonyEvent):
            self._classifier.observe_telephony(item)

    def _bind_stream(self, event: ControlEvent) -> None:
        stream_sid = event.payload["stream_sid"]
        if self.session.bind_stream(stream_sid, event.payload.get("call_sid")):
            LOGGER.info("Session %s: incoming stream has started %s", self.session.session_id, stream_sid)
            return
        self._report(
            ProtocolViolation(
                f"Stream identifier already bound to {self.session.stream_sid}; ignoring {stream_sid}."
            )
        )

    async def _forward_caller_audio(self, frame: MediaFrame) -> None:
        if self.session.stream_sid is None:
            self._report(ProtocolViolation("Media received before the stream started; frame dropped."))
            return
        await self._gateway.append_audio(frame.payload)

    async def _on_gateway(self, event: GatewayEvent) -> None:
        if self.session.state is SessionState.NEGOTIATING:
            self.session.transition(SessionState.ACTIVE)

        self._classifier.observe(event)

        audio = event.audio_delta
        if audio is not None:
            await self._forward_gateway_audio(audio)
            return
        if event.type == AUDIO_DELTA:
            self._report(DecodeError("Audio delta without payload; event dropped.", raw=event.message))
            return

        text = event.text_delta
        if text is not None:
            LOGGER.info("AI response: %s", text)
            return

        control = event.control
        if control is None:
            return
        if control.kind is ControlKind.GATEWAY_SESSION_UPDATED:
            LOGGER.info("Session %s: gateway session updated", self.session.session_id)
        elif control.kind is ControlKind.GENERATION_COMPLETE:
            LOGGER.info("Session %s: response completed or cancelled", self.session.session_id)
        elif control.kind is ControlKind.ERROR:
            LOGGER.warning("Session %s: gateway error event: %s", self.session.session_id, event.message.get("error"))

    async def _forward_gateway_audio(self, payload: str) -> None:
        stream_sid = self.session.stream_sid
        if not stream_sid:
            self._report(ProtocolViolation("Gateway audio before the stream started; frame dropped."))
            return
        frame = MediaFrame(payload=payload, direction=Direction.OUTBOUND, stream_sid=stream_sid)
        await self._telephony.send(frame)

    async def _shutdown(self) -> None:
        if self.session.state is not SessionState.CLOSING:
            self._begin_closing(TELEPHONY, None)

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        await self._gateway.close()
        await self._telephony.close()

        self.session.transition(SessionState.CLOSED)
        self._registry.discard(self.session)
        LOGGER.info("Session %s: closed (%s)", self.session.session_id, self.close_reason)
