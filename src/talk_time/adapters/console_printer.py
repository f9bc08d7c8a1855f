import logging
import sys
from typing import Any, TextIO

from talk_time.domain.fanout import Subscription
from talk_time.domain.notifications import format_timestamp

logger = logging.getLogger(__name__)

CLEAR_LINE = "\r\033[2K"


class ConsoleTranscriptPrinter:
    """Prints finals as lines and keeps the latest partial on a rewritable line."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._partial_visible = False

    async def run(self, subscription: Subscription) -> None:
        async for message in subscription:
            self.handle(message)

    def handle(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "final":
            self._clear_partial()
            self._stream.write(
                f"[{format_timestamp(message['start'])}] [Speaker {message['speaker']}] {message['text']}\n"
            )
        elif kind == "partial":
            self._stream.write(f"{CLEAR_LINE}[Speaker {message['speaker']}] {message['text']}")
            self._partial_visible = True
        else:
            return
        self._stream.flush()

    def _clear_partial(self) -> None:
        if self._partial_visible:
            self._stream.write(CLEAR_LINE)
            self._partial_visible = False
