import asyncio
from collections.abc import AsyncIterator

import pytest

from talk_time.domain.coordinator import SessionCoordinator
from talk_time.domain.errors import ResolutionError
from talk_time.domain.fanout import EventFanout, Subscription
from talk_time.domain.session import BYTES_PER_SECOND, Session
from talk_time.ports.devices import InputDevice
from talk_time.ports.transcriber import ChannelClosed, ChannelEvent, RecognitionEvent, Word

ONE_SECOND_OF_AUDIO = b"\x00" * BYTES_PER_SECOND


def make_words(*spans: tuple[float | None, float | None, str | None]) -> tuple[Word, ...]:
    return tuple(Word(start=start, end=end, speaker=speaker) for start, end, speaker in spans)


def final_event(text: str, start: float, end: float, speaker: str | None = "0") -> RecognitionEvent:
    return RecognitionEvent(
        text=text,
        is_final=True,
        words=make_words((start, None, speaker), (None, end, speaker)),
    )


def partial_event(text: str, start: float, end: float, speaker: str | None = "0") -> RecognitionEvent:
    return RecognitionEvent(
        text=text,
        is_final=False,
        words=make_words((start, None, speaker), (None, end, speaker)),
    )


def collect_messages(subscription: Subscription) -> list[dict]:
    messages = []
    while not subscription._queue.empty():
        message = subscription._queue.get_nowait()
        if message is not None:
            messages.append(message)
    return messages


class FakeTranscriptionChannel:
    def __init__(self, name: str, log: list[str], fail_on_start: bool = False) -> None:
        self.name = name
        self._log = log
        self._fail_on_start = fail_on_start
        self._queue: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self.started = False
        self.finish_calls = 0
        self.audio: list[bytes] = []
        self.send_error: Exception | None = None

    @property
    def finished(self) -> bool:
        return self.finish_calls > 0

    async def start(self) -> None:
        if self._fail_on_start:
            raise ConnectionError("backend unreachable")
        self.started = True
        self._log.append(f"{self.name}:start")

    async def send_audio(self, chunk: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.audio.append(chunk)

    async def events(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._queue.get()
            if isinstance(event, Exception):
                raise event
            yield event
            if isinstance(event, ChannelClosed):
                return

    async def finish(self) -> None:
        self.finish_calls += 1
        self._log.append(f"{self.name}:finish")

    def emit(self, event: ChannelEvent) -> None:
        self._queue.put_nowait(event)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)


class FakeAudioSource:
    def __init__(
        self,
        name: str,
        log: list[str],
        chunks: list[bytes] | None = None,
        returncode: int | None = 0,
        hold_open: bool = True,
        start_gate: asyncio.Event | None = None,
        read_error: Exception | None = None,
    ) -> None:
        self.name = name
        self._log = log
        self._chunks = list(chunks or [])
        self._hold_open = hold_open
        self._start_gate = start_gate
        self._read_error = read_error
        self.returncode = returncode
        self.reads = 0
        self.started = False
        self.terminated = False
        self._released = asyncio.Event()

    async def start(self) -> None:
        if self._start_gate is not None:
            await self._start_gate.wait()
        self.started = True
        self._log.append(f"{self.name}:start")

    async def read_chunks(self) -> AsyncIterator[bytes]:
        self.reads += 1
        for chunk in self._chunks:
            yield chunk
            await asyncio.sleep(0)
        if self._read_error is not None:
            raise self._read_error
        if self._hold_open:
            await self._released.wait()

    async def terminate(self) -> None:
        self.terminated = True
        self._log.append(f"{self.name}:terminate")
        self._released.set()

    async def wait(self) -> int | None:
        return self.returncode


class FakeResolver:
    def __init__(self, media_url: str = "https://cdn.example/audio.m3u8", error: Exception | None = None) -> None:
        self._media_url = media_url
        self._error = error
        self.calls: list[str] = []

    async def resolve(self, page_url: str) -> str:
        self.calls.append(page_url)
        if self._error is not None:
            raise self._error
        return self._media_url


class FakeDeviceLister:
    def __init__(self, devices: list[InputDevice] | None = None) -> None:
        self._devices = devices if devices is not None else [InputDevice(id="default", label="Default")]

    async def list_devices(self) -> list[InputDevice]:
        return list(self._devices)


class FakeAdapters:
    """Builds fake channels and sources and records lifecycle calls in order."""

    def __init__(self) -> None:
        self.log: list[str] = []
        self.channels: list[FakeTranscriptionChannel] = []
        self.sources: list[FakeAudioSource] = []
        self.source_chunks: list[bytes] = []
        self.source_returncode: int | None = 0
        self.source_hold_open = True
        self.fail_channel_start = False
        self.fail_channel_create = False
        self.fail_source_create = False
        self.source_start_gate: asyncio.Event | None = None
        self.source_read_error: Exception | None = None

    def create_channel(self) -> FakeTranscriptionChannel:
        if self.fail_channel_create:
            raise RuntimeError("no api key")
        name = f"channel{len(self.channels) + 1}"
        self.log.append(f"{name}:create")
        channel = FakeTranscriptionChannel(name, self.log, fail_on_start=self.fail_channel_start)
        self.channels.append(channel)
        return channel

    def create_source(self, session: Session) -> FakeAudioSource:
        if self.fail_source_create:
            raise FileNotFoundError("ffmpeg")
        name = f"source{len(self.sources) + 1}"
        self.log.append(f"{name}:create:{session.mode.value}:{session.source_descriptor}")
        source = FakeAudioSource(
            name,
            self.log,
            chunks=self.source_chunks,
            returncode=self.source_returncode,
            hold_open=self.source_hold_open,
            start_gate=self.source_start_gate,
            read_error=self.source_read_error,
        )
        self.sources.append(source)
        return source


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def adapters():
    return FakeAdapters()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def fanout():
    return EventFanout(queue_size=64)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(adapters, resolver, fanout, clock):
    return SessionCoordinator(
        channel_factory=adapters.create_channel,
        source_factory=adapters.create_source,
        resolver=resolver,
        fanout=fanout,
        open_timeout_seconds=5.0,
        drain_timeout_seconds=5.0,
        clock=clock,
    )


@pytest.fixture
def failing_resolver():
    return FakeResolver(error=ResolutionError("Failed to resolve a direct media URL."))
