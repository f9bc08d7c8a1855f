import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from time import time

from talk_time.domain.errors import SessionStartError
from talk_time.domain.events import (
    DomainEvent,
    DrainTimeoutExpired,
    OpenTimeoutExpired,
    SourceExited,
    TranscriptionClosed,
    TranscriptionFailed,
    TranscriptionOpened,
    TranscriptReceived,
)
from talk_time.domain.fanout import EventFanout, Subscription
from talk_time.domain.notifications import (
    AnalyticsSnapshot,
    final_message,
    format_timestamp,
    partial_message,
)
from talk_time.domain.platform import detect_platform_from_url, microphone_platform_label
from talk_time.domain.session import PendingPartial, Session, SessionMode, StartRequest
from talk_time.domain.state import SessionPhase
from talk_time.ports.audio_source import AudioSourcePort
from talk_time.ports.resolver import MediaResolverPort
from talk_time.ports.transcriber import (
    ChannelClosed,
    ChannelError,
    ChannelOpened,
    ChannelRecognition,
    RecognitionEvent,
    TranscriptionChannelPort,
)

logger = logging.getLogger(__name__)

OPEN_TIMEOUT_SECONDS = 15.0
DRAIN_TIMEOUT_SECONDS = 10.0

ChannelFactory = Callable[[], TranscriptionChannelPort]
SourceFactory = Callable[[Session], AudioSourcePort]


@dataclass
class _SessionResources:
    channel: TranscriptionChannelPort | None = None
    source: AudioSourcePort | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)
    timers: list[asyncio.TimerHandle] = field(default_factory=list)
    teardown: asyncio.Task | None = None


class SessionCoordinator:
    """Owns the single live session and every mutation of its statistics.

    Adapter callbacks never touch the session directly: they are turned into
    domain events tagged with the id of the session that produced them, queued
    on one inbox and applied in order by ``dispatch``. Events from a session
    that has been superseded or closed are dropped there.
    """

    def __init__(
        self,
        channel_factory: ChannelFactory,
        source_factory: SourceFactory,
        resolver: MediaResolverPort,
        fanout: EventFanout,
        open_timeout_seconds: float = OPEN_TIMEOUT_SECONDS,
        drain_timeout_seconds: float = DRAIN_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time,
    ) -> None:
        self._channel_factory = channel_factory
        self._source_factory = source_factory
        self._resolver = resolver
        self._fanout = fanout
        self._open_timeout_seconds = open_timeout_seconds
        self._drain_timeout_seconds = drain_timeout_seconds
        self._clock = clock

        self._session = Session()
        self._resources = _SessionResources()
        self._inbox: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def session(self) -> Session:
        return self._session

    def snapshot(self) -> AnalyticsSnapshot:
        return AnalyticsSnapshot.of(self._session, self._clock())

    def subscribe(self) -> Subscription:
        return self._fanout.subscribe(self.snapshot().to_message())

    def close_subscribers(self) -> None:
        self._fanout.close_all()

    def post(self, event: DomainEvent) -> None:
        self._inbox.put_nowait(event)

    async def run(self) -> None:
        logger.info("Session coordinator started")
        while True:
            event = await self._inbox.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Error handling %s", type(event).__name__)

    async def start(self, request: StartRequest) -> str:
        request.validate()

        async with self._lifecycle_lock:
            await self.stop()

            if request.use_microphone:
                platform = microphone_platform_label()
            else:
                platform = detect_platform_from_url(request.remote_url)

            session = Session.for_request(request, platform)
            resources = _SessionResources()
            self._session = session
            self._resources = resources
            self._publish_snapshot()

            try:
                if session.mode == SessionMode.URL:
                    logger.info("Resolving stream URL %s", request.remote_url)
                    session.source_descriptor = await self._resolver.resolve(request.remote_url)
                    logger.info("Resolved media URL")
                if session.closed:
                    logger.info("Session %d stopped before connecting", session.id)
                    return platform
                channel = self._channel_factory()
            except SessionStartError:
                await self._teardown(session, resources, "start failed")
                raise
            except Exception as exc:
                await self._teardown(session, resources, "start failed")
                raise SessionStartError(f"Failed to create transcription channel: {exc}") from exc

            resources.channel = channel
            session.transition_to(SessionPhase.CONNECTING)
            resources.tasks.append(
                asyncio.create_task(self._relay_channel_events(session.id, channel))
            )
            loop = asyncio.get_running_loop()
            resources.timers.append(
                loop.call_later(
                    self._open_timeout_seconds,
                    self.post,
                    OpenTimeoutExpired(session_id=session.id),
                )
            )

            logger.info("Connecting to transcription backend...")
            try:
                await channel.start()
            except Exception as exc:
                await self._teardown(session, resources, "channel failed to start")
                raise SessionStartError(f"Failed to start transcription channel: {exc}") from exc

            self._publish_snapshot()
            return platform

    async def stop(self) -> None:
        session = self._session
        resources = self._resources
        if not session.active:
            if resources.teardown is not None:
                await resources.teardown
            return
        await self._teardown(session, resources, "stop requested")

    async def dispatch(self, event: DomainEvent) -> None:
        session = self._session
        if event.session_id != session.id or session.closed:
            logger.debug(
                "Dropping %s from session %d (%.2fs old)",
                type(event).__name__,
                event.session_id,
                time() - event.timestamp,
            )
            return

        if isinstance(event, TranscriptReceived):
            self._apply_recognition(session, event.recognition)
        elif isinstance(event, TranscriptionOpened):
            await self._handle_opened(session)
        elif isinstance(event, TranscriptionFailed):
            logger.error("Transcription backend error: %s", event.message)
            await self._teardown(session, self._resources, "backend error")
        elif isinstance(event, TranscriptionClosed):
            logger.info("Transcription connection closed")
            await self._teardown(session, self._resources, "backend closed")
        elif isinstance(event, SourceExited):
            await self._handle_source_exit(session, event.returncode)
        elif isinstance(event, OpenTimeoutExpired):
            if not session.opened:
                logger.error(
                    "Timed out after %.0fs waiting for transcription backend",
                    self._open_timeout_seconds,
                )
                await self._teardown(session, self._resources, "open timeout")
        elif isinstance(event, DrainTimeoutExpired):
            logger.warning("Transcription backend did not close after audio ended")
            await self._teardown(session, self._resources, "drain timeout")

    async def _handle_opened(self, session: Session) -> None:
        if session.phase != SessionPhase.CONNECTING:
            return
        resources = self._resources
        session.mark_opened(self._clock())
        logger.info("Transcription connection opened, starting audio source")

        try:
            source = self._source_factory(session)
            resources.source = source
            await source.start()
        except Exception:
            logger.exception("Failed to start audio source")
            await self._teardown(session, resources, "audio source failed")
            return

        if session.closed:
            # stopped while the source was starting; _release has already run
            logger.info("Session %d closed during audio source start", session.id)
            await source.terminate()
            return

        resources.tasks.append(
            asyncio.create_task(self._pump_audio(session, resources.channel, source))
        )
        self._publish_snapshot()

    async def _handle_source_exit(self, session: Session, returncode: int | None) -> None:
        if returncode:
            logger.warning("Audio source exited with code %s, ending transcription", returncode)
        else:
            logger.info("Audio source ended, ending transcription")
        resources = self._resources
        if resources.channel is not None:
            await resources.channel.finish()
        resources.timers.append(
            asyncio.get_running_loop().call_later(
                self._drain_timeout_seconds,
                self.post,
                DrainTimeoutExpired(session_id=session.id),
            )
        )

    def _apply_recognition(self, session: Session, event: RecognitionEvent | None) -> None:
        try:
            text = event.text
            words = event.words
            if not text or not words:
                return
            speaker = event.speaker
            start = event.start
            end = event.end
            first_start = words[0].start
            last_end = words[-1].end
        except (AttributeError, IndexError, TypeError, ValueError):
            logger.debug("Dropping malformed recognition event", exc_info=True)
            return

        session.word_count += len(text.split())

        if event.is_final:
            session.add_speaking_time(speaker, end - start)
            session.pending_partial = None
            logger.info("Final: [%s] [Speaker %s] %s", format_timestamp(start), speaker, text)
            self._fanout.publish(
                final_message(speaker, text, start, end, session.speaker_durations)
            )
            self._publish_snapshot()
            return

        pending = session.pending_partial
        if pending is None or pending.speaker_id != speaker:
            pending = PendingPartial(speaker_id=speaker, estimated_start=first_start)
            session.pending_partial = pending
        estimated_start = pending.estimated_start
        if estimated_start is None:
            estimated_start = start
        estimated_end = last_end if last_end is not None else estimated_start
        logger.debug("Partial: [Speaker %s] %s", speaker, text)
        self._fanout.publish(
            partial_message(speaker, text, estimated_start, estimated_end, session.speaker_durations)
        )

    async def _relay_channel_events(
        self, session_id: int, channel: TranscriptionChannelPort
    ) -> None:
        try:
            async for event in channel.events():
                if isinstance(event, ChannelRecognition):
                    self.post(TranscriptReceived(session_id=session_id, recognition=event.event))
                elif isinstance(event, ChannelOpened):
                    self.post(TranscriptionOpened(session_id=session_id))
                elif isinstance(event, ChannelError):
                    self.post(TranscriptionFailed(session_id=session_id, message=event.message))
                elif isinstance(event, ChannelClosed):
                    self.post(TranscriptionClosed(session_id=session_id))
                    break
        except Exception as exc:
            logger.exception("Transcription event relay failed")
            self.post(TranscriptionFailed(session_id=session_id, message=str(exc)))

    async def _pump_audio(
        self,
        session: Session,
        channel: TranscriptionChannelPort,
        source: AudioSourcePort,
    ) -> None:
        returncode = None
        try:
            async for chunk in source.read_chunks():
                if session.closed:
                    break
                await channel.send_audio(chunk)
                session.bytes_ingested += len(chunk)
            returncode = await source.wait()
        except Exception:
            logger.exception("Audio pump failed")
        self.post(SourceExited(session_id=session.id, returncode=returncode))

    async def _teardown(
        self, session: Session, resources: _SessionResources, reason: str
    ) -> None:
        if resources.teardown is None:
            if not session.close(self._clock()):
                return
            logger.info("Stopping session %d (%s)", session.id, reason)
            for timer in resources.timers:
                timer.cancel()
            resources.timers.clear()
            resources.teardown = asyncio.create_task(self._release(resources))
            self._publish_snapshot()
        await resources.teardown

    async def _release(self, resources: _SessionResources) -> None:
        if resources.channel is not None:
            try:
                await resources.channel.finish()
            except Exception:
                logger.warning("Failed to finish transcription channel", exc_info=True)
        if resources.source is not None:
            try:
                await resources.source.terminate()
            except Exception:
                logger.warning("Failed to terminate audio source", exc_info=True)
        current = asyncio.current_task()
        for task in resources.tasks:
            if task is not current and not task.done():
                task.cancel()
        resources.tasks.clear()

    def _publish_snapshot(self) -> None:
        self._fanout.publish(self.snapshot().to_message())
