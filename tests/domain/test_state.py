import pytest

from talk_time.domain.state import (
    SessionPhase,
    InvalidTransitionError,
    validate_transition,
)


class TestSessionTransitions:
    def test_pending_to_connecting(self):
        validate_transition(SessionPhase.PENDING, SessionPhase.CONNECTING)

    def test_pending_to_closed(self):
        validate_transition(SessionPhase.PENDING, SessionPhase.CLOSED)

    def test_connecting_to_streaming(self):
        validate_transition(SessionPhase.CONNECTING, SessionPhase.STREAMING)

    def test_connecting_to_closed(self):
        validate_transition(SessionPhase.CONNECTING, SessionPhase.CLOSED)

    def test_streaming_to_closed(self):
        validate_transition(SessionPhase.STREAMING, SessionPhase.CLOSED)


class TestInvalidTransitions:
    def test_idle_cannot_connect(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionPhase.IDLE, SessionPhase.CONNECTING)

    def test_pending_cannot_skip_to_streaming(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionPhase.PENDING, SessionPhase.STREAMING)

    def test_streaming_cannot_reconnect(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionPhase.STREAMING, SessionPhase.CONNECTING)

    def test_closed_is_terminal(self):
        for target in SessionPhase:
            with pytest.raises(InvalidTransitionError):
                validate_transition(SessionPhase.CLOSED, target)

    def test_error_names_both_phases(self):
        with pytest.raises(InvalidTransitionError, match="CLOSED to STREAMING"):
            validate_transition(SessionPhase.CLOSED, SessionPhase.STREAMING)
