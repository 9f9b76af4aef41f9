"""Session lifecycle state machine.

IDLE ──[start]──→ CONNECTING ──[open / first chunk]──→ STREAMING
  │                   │                                   │
  │                   ├──[transport error]──→ FAILED ←────┤
  │                   │                                   │
  └──[cancel]─────────┴──[cancel]──→ CANCELLED ←──────────┤
                                                          │
                                         [end of stream]  │
                                                          v
                                                      COMPLETED

Terminal states have no outgoing transitions.
"""

from __future__ import annotations

import enum

import structlog

log = structlog.get_logger()


class SessionState(enum.Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[SessionState] = frozenset({
    SessionState.COMPLETED,
    SessionState.CANCELLED,
    SessionState.FAILED,
})

# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[SessionState, SessionState]] = {
    (SessionState.IDLE, SessionState.CONNECTING),
    (SessionState.CONNECTING, SessionState.STREAMING),
    (SessionState.STREAMING, SessionState.COMPLETED),
    # Cancellation before or during delivery
    (SessionState.IDLE, SessionState.CANCELLED),
    (SessionState.CONNECTING, SessionState.CANCELLED),
    (SessionState.STREAMING, SessionState.CANCELLED),
    # Transport or decode infrastructure failure
    (SessionState.CONNECTING, SessionState.FAILED),
    (SessionState.STREAMING, SessionState.FAILED),
}


class InvalidTransition(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: SessionState, to_state: SessionState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} → {to_state.value}")


def validate_transition(from_state: SessionState, to_state: SessionState) -> None:
    """Validate a state transition, raising InvalidTransition if not allowed."""
    if (from_state, to_state) not in VALID_TRANSITIONS:
        raise InvalidTransition(from_state, to_state)


def transition(
    current: SessionState,
    target: SessionState,
    session_id: str,
    trigger: str = "",
) -> SessionState:
    """Execute a validated state transition, logging the change."""
    validate_transition(current, target)
    log.info(
        "session_transition",
        session_id=session_id,
        from_state=current.value,
        to_state=target.value,
        trigger=trigger,
    )
    return target
