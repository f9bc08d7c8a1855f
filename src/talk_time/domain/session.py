import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from time import time

from talk_time.domain.errors import InvalidStartRequest
from talk_time.domain.state import SessionPhase, validate_transition

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2
CHANNELS = 1
BYTES_PER_SECOND = SAMPLE_RATE * BYTES_PER_SAMPLE * CHANNELS

_session_ids = itertools.count(1)


class SessionMode(str, Enum):
    IDLE = "idle"
    MIC = "mic"
    URL = "url"


class SessionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"


@dataclass(frozen=True)
class StartRequest:
    use_microphone: bool = False
    remote_url: str | None = None
    device_id: str | None = None

    def __post_init__(self) -> None:
        if self.remote_url is not None and not self.remote_url.strip():
            object.__setattr__(self, "remote_url", None)

    @property
    def mode(self) -> SessionMode:
        return SessionMode.MIC if self.use_microphone else SessionMode.URL

    def validate(self) -> None:
        if not self.use_microphone and not self.remote_url:
            raise InvalidStartRequest("Provide url or mic=true")


@dataclass
class PendingPartial:
    speaker_id: str
    estimated_start: float | None


@dataclass
class Session:
    mode: SessionMode = SessionMode.IDLE
    url: str | None = None
    source_descriptor: str | None = None
    platform_label: str | None = None
    id: int = field(default_factory=lambda: next(_session_ids))
    phase: SessionPhase = SessionPhase.IDLE
    started_at: float | None = None
    closed_at: float | None = None
    bytes_ingested: int = 0
    word_count: int = 0
    speaker_durations: dict[str, float] = field(default_factory=dict)
    pending_partial: PendingPartial | None = None

    @classmethod
    def for_request(cls, request: StartRequest, platform_label: str) -> "Session":
        return cls(
            mode=request.mode,
            url=None if request.use_microphone else request.remote_url,
            source_descriptor=request.device_id if request.use_microphone else None,
            platform_label=platform_label,
            phase=SessionPhase.PENDING,
        )

    @property
    def opened(self) -> bool:
        return self.started_at is not None

    @property
    def closed(self) -> bool:
        return self.phase == SessionPhase.CLOSED

    @property
    def active(self) -> bool:
        return self.phase in (SessionPhase.PENDING, SessionPhase.CONNECTING, SessionPhase.STREAMING)

    @property
    def status(self) -> SessionStatus:
        if self.phase == SessionPhase.CONNECTING:
            return SessionStatus.CONNECTING
        if self.phase == SessionPhase.STREAMING:
            return SessionStatus.STREAMING
        return SessionStatus.IDLE

    @property
    def ingested_seconds(self) -> float:
        return self.bytes_ingested / BYTES_PER_SECOND

    def transition_to(self, target: SessionPhase) -> None:
        validate_transition(self.phase, target)
        logger.info("Session %d: %s -> %s", self.id, self.phase.name, target.name)
        self.phase = target

    def mark_opened(self, now: float | None = None) -> None:
        self.transition_to(SessionPhase.STREAMING)
        self.started_at = time() if now is None else now

    def close(self, now: float | None = None) -> bool:
        if self.closed or self.phase == SessionPhase.IDLE:
            return False
        self.transition_to(SessionPhase.CLOSED)
        self.closed_at = time() if now is None else now
        self.pending_partial = None
        return True

    def uptime_ms(self, now: float) -> int:
        if self.started_at is None:
            return 0
        until = self.closed_at if self.closed_at is not None else now
        return max(0, int((until - self.started_at) * 1000))

    def add_speaking_time(self, speaker_id: str, seconds: float) -> float:
        total = self.speaker_durations.get(speaker_id, 0.0) + max(0.0, seconds)
        self.speaker_durations[speaker_id] = total
        return total
