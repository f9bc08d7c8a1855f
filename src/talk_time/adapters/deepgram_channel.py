import asyncio
import json
import logging
from collections.abc import AsyncIterator

from deepgram import AsyncDeepgramClient
from deepgram.extensions.types.sockets.listen_v1_results_event import ListenV1ResultsEvent
from deepgram.listen.v1.socket_client import EventType

from talk_time.domain.session import CHANNELS, SAMPLE_RATE
from talk_time.ports.transcriber import (
    ChannelClosed,
    ChannelError,
    ChannelEvent,
    ChannelOpened,
    ChannelRecognition,
    RecognitionEvent,
    Word,
)

logger = logging.getLogger(__name__)

CLOSE_STREAM_MESSAGE = json.dumps({"type": "CloseStream"})


class DeepgramTranscriptionChannel:
    def __init__(
        self,
        api_key: str,
        model: str = "nova-2",
        language: str = "en",
        sample_rate: int = SAMPLE_RATE,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._sample_rate = sample_rate
        self._socket = None
        self._event_queue: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self._connection_task: asyncio.Task | None = None
        self._finishing = False
        self._closed = False

    async def start(self) -> None:
        if self._connection_task is not None:
            return
        self._connection_task = asyncio.create_task(self._run_connection())

    async def send_audio(self, chunk: bytes) -> None:
        if self._socket is None or self._finishing:
            return
        try:
            await self._socket._send(chunk)
        except Exception as exc:
            logger.warning("Error sending audio to Deepgram: %s", exc)

    async def events(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._event_queue.get()
            yield event
            if isinstance(event, ChannelClosed):
                return

    async def finish(self) -> None:
        if self._finishing:
            return
        self._finishing = True
        if self._socket is not None:
            try:
                await self._socket._send(CLOSE_STREAM_MESSAGE)
                logger.info("Deepgram stream finishing")
                return
            except Exception as exc:
                logger.warning("Failed to finish Deepgram stream: %s", exc)
        if self._connection_task is not None and not self._connection_task.done():
            self._connection_task.cancel()

    async def _run_connection(self) -> None:
        client = AsyncDeepgramClient(api_key=self._api_key)
        try:
            async with client.listen.v1.connect(
                model=self._model,
                language=self._language,
                punctuate="true",
                smart_format="true",
                diarize="true",
                interim_results="true",
                encoding="linear16",
                sample_rate=str(self._sample_rate),
                channels=str(CHANNELS),
            ) as socket:
                self._socket = socket
                socket.on(EventType.OPEN, self._on_open)
                socket.on(EventType.MESSAGE, self._on_message)
                socket.on(EventType.ERROR, self._on_error)
                if self._finishing:
                    return
                await socket.start_listening()
        except asyncio.CancelledError:
            logger.info("Deepgram connection cancelled")
        except Exception as exc:
            logger.error("Deepgram connection failed: %s", exc)
            self._event_queue.put_nowait(ChannelError(message=str(exc)))
        finally:
            self._socket = None
            self._emit_closed()

    async def _on_open(self, _message=None) -> None:
        logger.info("Deepgram connection opened")
        self._event_queue.put_nowait(ChannelOpened())

    async def _on_message(self, message) -> None:
        if not isinstance(message, ListenV1ResultsEvent):
            return
        try:
            recognition = results_to_recognition(message)
        except (IndexError, AttributeError, TypeError, ValueError):
            return
        self._event_queue.put_nowait(ChannelRecognition(event=recognition))

    async def _on_error(self, error) -> None:
        logger.error("Deepgram error: %s", error)
        self._event_queue.put_nowait(ChannelError(message=str(error)))

    def _emit_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._event_queue.put_nowait(ChannelClosed())


def results_to_recognition(message) -> RecognitionEvent:
    alternative = message.channel.alternatives[0]
    words = tuple(
        Word(
            start=word.start,
            end=word.end,
            speaker=None if getattr(word, "speaker", None) is None else str(word.speaker),
            text=word.word,
        )
        for word in (alternative.words or [])
    )
    return RecognitionEvent(
        text=alternative.transcript or "",
        is_final=bool(message.is_final),
        words=words,
    )
