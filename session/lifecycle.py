"""
Session Lifecycle

Disconnected -> Connecting -> Streaming -> (Idle | Error), with Streaming
re-entered on every new user turn. A failed health probe parks the session in
Error, but events that arrive afterwards still move it to Streaming.
"""

import logging
import time
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    IDLE = "idle"
    ERROR = "error"


ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.DISCONNECTED: frozenset({SessionState.CONNECTING, SessionState.ERROR}),
    SessionState.CONNECTING: frozenset({SessionState.STREAMING, SessionState.ERROR}),
    SessionState.STREAMING: frozenset({SessionState.IDLE, SessionState.ERROR}),
    SessionState.IDLE: frozenset({SessionState.STREAMING, SessionState.ERROR}),
    SessionState.ERROR: frozenset({SessionState.STREAMING}),
}


class SessionLifecycle:
    """Tracks the current state and a short history of transitions."""

    def __init__(self, initial: SessionState = SessionState.DISCONNECTED, history_limit: int = 50):
        self._state = initial
        self._history: List[Tuple[float, SessionState, SessionState, Optional[str]]] = []
        self._history_limit = history_limit

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> List[Tuple[float, SessionState, SessionState, Optional[str]]]:
        return list(self._history)

    def can_transition(self, target: SessionState) -> bool:
        return target in ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: SessionState, reason: Optional[str] = None) -> bool:
        """
        Move to `target` if the move is allowed.

        Staying in the current state is a silent no-op. A disallowed move is
        logged and refused rather than raised; callers drive the machine from
        stream events they do not control.

        Returns:
            True if the state changed
        """
        if target == self._state:
            return False
        if not self.can_transition(target):
            logger.warning(f"Refusing session transition {self._state.value} -> {target.value} ({reason})")
            return False

        previous = self._state
        self._state = target
        self._history.append((time.time(), previous, target, reason))
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]
        logger.info(f"Session state {previous.value} -> {target.value}" + (f" ({reason})" if reason else ""))
        return True
