"""
SpeakEasy — Session State Machine

Per-connection lifecycle: IDLE → STREAMING → FINALIZING → CLOSED.
A session only moves forward; CLOSED is terminal.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Set

logger = logging.getLogger("speakeasy.state")


class SessionState(str, Enum):
    IDLE = "idle"                # Connection open, no stream yet
    STREAMING = "streaming"      # Media flowing, session registered
    FINALIZING = "finalizing"    # Stop received, record handed to the finalizer
    CLOSED = "closed"            # Removed from the registry


_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.IDLE:       {SessionState.STREAMING, SessionState.CLOSED},
    SessionState.STREAMING:  {SessionState.FINALIZING, SessionState.CLOSED},
    SessionState.FINALIZING: {SessionState.CLOSED},
    SessionState.CLOSED:     set(),
}


@dataclass(frozen=True)
class StateChange:
    source: SessionState
    target: SessionState
    reason: str
    at: float


class SessionStateMachine:
    """
    Usage:
        sm = SessionStateMachine("conn-1")
        sm.transition(SessionState.STREAMING, "stream-start")
        sm.transition(SessionState.IDLE)     # backwards → ValueError
    """

    def __init__(self, label: str = "") -> None:
        self._label = label
        self._state = SessionState.IDLE
        self._since = time.time()
        self._changes: List[StateChange] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def changes(self) -> List[StateChange]:
        return list(self._changes)

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    def seconds_in_state(self) -> float:
        return time.time() - self._since

    def can_transition(self, target: SessionState) -> bool:
        return target in _TRANSITIONS[self._state]

    def transition(self, target: SessionState, reason: str = "") -> None:
        """Move to `target`. Same state is a no-op; anything not allowed raises ValueError."""
        if target is self._state:
            return
        if not self.can_transition(target):
            raise ValueError(
                f"[{self._label}] cannot go {self._state.value} → {target.value} ({reason or 'no reason'})"
            )

        source, now = self._state, time.time()
        self._changes.append(StateChange(source, target, reason, now))
        logger.info(
            f"[{self._label}] {source.value} → {target.value} "
            f"after {now - self._since:.1f}s" + (f" ({reason})" if reason else "")
        )
        self._state = target
        self._since = now
