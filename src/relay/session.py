from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SessionState(str, Enum):
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CONNECTING: frozenset({SessionState.NEGOTIATING, SessionState.CLOSING}),
    SessionState.NEGOTIATING: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


@dataclass(slots=True)
class Session:
    """State of one call. Owned by exactly one SessionBridge."""

    session_id: str = field(default_factory=lambda: secrets.token_hex(8))
    stream_sid: str | None = None
    call_sid: str | None = None
    state: SessionState = SessionState.CONNECTING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def can_transition(self, new_state: SessionState) -> bool:
        return new_state in _TRANSITIONS[self.state]

    def transition(self, new_state: SessionState) -> None:
        if not self.can_transition(new_state):
            raise RuntimeError(f"Invalid session transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def bind_stream(self, stream_sid: str, call_sid: str | None = None) -> bool:
        """Set the stream identifier once. Returns False if a different one is already bound."""

        if self.stream_sid is None:
            self.stream_sid = stream_sid
            self.call_sid = call_sid
            return True
        return self.stream_sid == stream_sid


class SessionRegistry:
    """Set of live sessions in this process.

    Used for lifecycle accounting only; sessions never look each other up.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    def discard(self, session: Session) -> None:
        self._sessions.pop(session.session_id, None)

    def __contains__(self, session: object) -> bool:
        return isinstance(session, Session) and session.session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> list[Session]:
        return list(self._sessions.values())


ACTIVE_SESSIONS = SessionRegistry()
