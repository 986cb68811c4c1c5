import threading
from enum import Enum, auto


class SessionPhase(Enum):
    CONNECTING = auto()
    STREAMING = auto()
    DRAINING = auto()
    FINALIZING = auto()
    FINISHED = auto()
    FAILED = auto()


VALID_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.CONNECTING: {SessionPhase.STREAMING, SessionPhase.FAILED},
    SessionPhase.STREAMING: {SessionPhase.DRAINING, SessionPhase.FINISHED, SessionPhase.FAILED},
    SessionPhase.DRAINING: {SessionPhase.FINALIZING, SessionPhase.FINISHED, SessionPhase.FAILED},
    SessionPhase.FINALIZING: {SessionPhase.FINISHED, SessionPhase.FAILED},
    SessionPhase.FINISHED: set(),
    SessionPhase.FAILED: set(),
}

TERMINAL_PHASES = frozenset({SessionPhase.FINISHED, SessionPhase.FAILED})


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionPhase, target: SessionPhase) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")


class StopSignal:
    """Advisory cancellation token shared by the capture thread and the event loop.

    Setting it asks every reader to wind down; readers still drain work that
    was queued before they observed it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)
