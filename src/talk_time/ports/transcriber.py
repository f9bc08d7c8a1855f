from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

UNKNOWN_SPEAKER = "unknown"


@dataclass(frozen=True)
class Word:
    start: float | None = None
    end: float | None = None
    speaker: str | None = None
    text: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Word":
        speaker = payload.get("speaker")
        return cls(
            start=_optional_float(payload.get("start")),
            end=_optional_float(payload.get("end")),
            speaker=None if speaker is None else str(speaker),
            text=str(payload.get("word") or payload.get("text") or ""),
        )


@dataclass(frozen=True)
class RecognitionEvent:
    text: str
    is_final: bool
    words: tuple[Word, ...] = field(default_factory=tuple)

    @property
    def speaker(self) -> str:
        if not self.words or self.words[0].speaker is None:
            return UNKNOWN_SPEAKER
        return self.words[0].speaker

    @property
    def start(self) -> float:
        return self.words[0].start or 0.0

    @property
    def end(self) -> float:
        return self.words[-1].end or self.start

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RecognitionEvent":
        """Build an event from a Deepgram-style results payload.

        Accepts either the raw backend shape
        (``{"is_final", "channel": {"alternatives": [{"transcript", "words"}]}}``)
        or a flat ``{"is_final", "text", "words"}`` mapping.
        """
        if "channel" in payload:
            alternative = payload["channel"]["alternatives"][0]
            text = alternative.get("transcript") or ""
            raw_words = alternative.get("words") or []
        else:
            text = payload.get("text") or ""
            raw_words = payload.get("words") or []
        return cls(
            text=text,
            is_final=bool(payload.get("is_final", False)),
            words=tuple(Word.from_payload(w) for w in raw_words),
        )


@dataclass(frozen=True)
class ChannelOpened:
    pass


@dataclass(frozen=True)
class ChannelRecognition:
    event: RecognitionEvent


@dataclass(frozen=True)
class ChannelError:
    message: str


@dataclass(frozen=True)
class ChannelClosed:
    pass


ChannelEvent = ChannelOpened | ChannelRecognition | ChannelError | ChannelClosed


class TranscriptionChannelPort(Protocol):
    async def start(self) -> None: ...
    async def send_audio(self, chunk: bytes) -> None: ...
    def events(self) -> AsyncIterator[ChannelEvent]: ...
    async def finish(self) -> None: ...


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
