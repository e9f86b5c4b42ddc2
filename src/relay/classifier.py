"""Logging of gateway events of interest.

The classifier only observes; it never changes what the bridge forwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Final

from relay.events import GatewayEvent, TelephonyEvent

LOGGER = logging.getLogger(__name__)

# See the OpenAI Realtime API event reference. session.updated is logged by the bridge.
LOG_EVENT_TYPES: Final[frozenset[str]] = frozenset(
    {
        "response.content.done",
        "rate_limits.updated",
        "response.done",
        "input_audio_buffer.committed",
        "input_audio_buffer.speech_stopped",
        "input_audio_buffer.speech_started",
        "session.created",
    }
)


class EventClassifier:
    def __init__(
        self,
        event_types: Iterable[str] = LOG_EVENT_TYPES,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._event_types = frozenset(event_types)
        self._logger = logger or LOGGER

    def is_of_interest(self, event: GatewayEvent) -> bool:
        return event.type in self._event_types

    def observe(self, event: GatewayEvent) -> None:
        try:
            if self.is_of_interest(event):
                self._logger.info("Received event: %s %s", event.type, event.message)
        except Exception:  # noqa: BLE001
            # Observability must never break forwarding.
            return

    def observe_telephony(self, event: TelephonyEvent) -> None:
        try:
            self._logger.info("Received non-media event: %s", event.event)
        except Exception:  # noqa: BLE001
            return
