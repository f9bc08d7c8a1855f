import logging

from talk_time.adapters.ffmpeg_source import SubprocessAudioSource, build_mic_args, build_url_args
from talk_time.adapters.stream_resolver import StreamUrlResolver
from talk_time.config import TalkTimeConfig
from talk_time.domain.coordinator import ChannelFactory, SessionCoordinator, SourceFactory
from talk_time.domain.fanout import EventFanout
from talk_time.domain.session import Session, SessionMode
from talk_time.ports.devices import DeviceListerPort

logger = logging.getLogger(__name__)


def create_channel_factory(config: TalkTimeConfig) -> ChannelFactory:
    api_key = config.resolved_api_key()

    def create_channel():
        from talk_time.adapters.deepgram_channel import DeepgramTranscriptionChannel

        return DeepgramTranscriptionChannel(
            api_key=api_key,
            model=config.deepgram_model,
            language=config.language,
        )

    return create_channel


def create_source_factory(config: TalkTimeConfig) -> SourceFactory:
    def create_source(session: Session):
        if session.mode == SessionMode.URL:
            return SubprocessAudioSource(
                build_url_args(session.source_descriptor, ffmpeg_path=config.ffmpeg_path),
                interrupt_grace_seconds=config.interrupt_grace_seconds,
                terminate_grace_seconds=config.terminate_grace_seconds,
            )

        device = session.source_descriptor or config.capture_device
        if config.capture_backend == "sounddevice":
            from talk_time.adapters.sounddevice_source import SounddeviceAudioSource

            return SounddeviceAudioSource(device=device)

        return SubprocessAudioSource(
            build_mic_args(device, ffmpeg_path=config.ffmpeg_path),
            interrupt_grace_seconds=config.interrupt_grace_seconds,
            terminate_grace_seconds=config.terminate_grace_seconds,
        )

    return create_source


def create_device_lister(config: TalkTimeConfig) -> DeviceListerPort:
    if config.capture_backend == "sounddevice":
        from talk_time.adapters.device_listing import SounddeviceDeviceLister

        return SounddeviceDeviceLister()
    from talk_time.adapters.device_listing import FfmpegDeviceLister

    return FfmpegDeviceLister(ffmpeg_path=config.ffmpeg_path)


def create_coordinator(config: TalkTimeConfig) -> SessionCoordinator:
    fanout = EventFanout(queue_size=config.subscriber_queue_size)
    resolver = StreamUrlResolver(
        ytdlp_path=config.ytdlp_path,
        streamlink_path=config.streamlink_path,
        timeout=config.resolve_timeout_seconds,
    )
    return SessionCoordinator(
        channel_factory=create_channel_factory(config),
        source_factory=create_source_factory(config),
        resolver=resolver,
        fanout=fanout,
        open_timeout_seconds=config.open_timeout_seconds,
        drain_timeout_seconds=config.drain_timeout_seconds,
    )
