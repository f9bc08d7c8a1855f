from dataclasses import dataclass, field
from time import time

from talk_time.ports.transcriber import RecognitionEvent


@dataclass(frozen=True)
class DomainEvent:
    session_id: int = 0
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class TranscriptionOpened(DomainEvent):
    pass


@dataclass(frozen=True)
class TranscriptReceived(DomainEvent):
    recognition: RecognitionEvent | None = None


@dataclass(frozen=True)
class TranscriptionFailed(DomainEvent):
    message: str = ""


@dataclass(frozen=True)
class TranscriptionClosed(DomainEvent):
    pass


@dataclass(frozen=True)
class SourceExited(DomainEvent):
    returncode: int | None = None


@dataclass(frozen=True)
class OpenTimeoutExpired(DomainEvent):
    pass


@dataclass(frozen=True)
class DrainTimeoutExpired(DomainEvent):
    pass
