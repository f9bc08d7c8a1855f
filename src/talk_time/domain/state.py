from enum import Enum, auto


class SessionPhase(Enum):
    IDLE = auto()
    PENDING = auto()
    CONNECTING = auto()
    STREAMING = auto()
    CLOSED = auto()


VALID_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.IDLE: set(),
    SessionPhase.PENDING: {SessionPhase.CONNECTING, SessionPhase.CLOSED},
    SessionPhase.CONNECTING: {SessionPhase.STREAMING, SessionPhase.CLOSED},
    SessionPhase.STREAMING: {SessionPhase.CLOSED},
    SessionPhase.CLOSED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionPhase, target: SessionPhase) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
