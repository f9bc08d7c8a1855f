"""Outbound messages published to subscribers.

Field names are camelCase because they form the JSON contract consumed by
the event feed; everything on the Python side stays snake_case.
"""

from dataclasses import dataclass
from typing import Any

from talk_time.domain.session import Session


@dataclass(frozen=True)
class AnalyticsSnapshot:
    mode: str
    platform: str | None
    url: str | None
    status: str
    word_count: int
    speaker_durations: dict[str, float]
    uptime_ms: int
    ingested_seconds: float

    @classmethod
    def of(cls, session: Session, now: float) -> "AnalyticsSnapshot":
        return cls(
            mode=session.mode.value,
            platform=session.platform_label,
            url=session.url,
            status=session.status.value,
            word_count=session.word_count,
            speaker_durations=dict(session.speaker_durations),
            uptime_ms=session.uptime_ms(now),
            ingested_seconds=session.ingested_seconds,
        )

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "analytics",
            "mode": self.mode,
            "platform": self.platform,
            "url": self.url,
            "status": self.status,
            "wordsCount": self.word_count,
            "speakerDurations": dict(self.speaker_durations),
            "uptimeMs": self.uptime_ms,
            "ingestedSeconds": self.ingested_seconds,
            "speakers": [
                {"id": speaker_id, "seconds": seconds}
                for speaker_id, seconds in self.speaker_durations.items()
            ],
        }


def partial_message(
    speaker: str, text: str, start: float, end: float, durations: dict[str, float]
) -> dict[str, Any]:
    return {
        "type": "partial",
        "speaker": speaker,
        "text": text,
        "start": start,
        "end": end,
        "speakerDurations": dict(durations),
    }


def final_message(
    speaker: str, text: str, start: float, end: float, durations: dict[str, float]
) -> dict[str, Any]:
    return {
        "type": "final",
        "replace": True,
        "speaker": speaker,
        "text": text,
        "start": start,
        "end": end,
        "speakerDurations": dict(durations),
    }


def format_timestamp(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours % 24:02d}:{minutes:02d}:{secs:02d}"
