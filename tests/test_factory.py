from talk_time.adapters.device_listing import FfmpegDeviceLister
from talk_time.adapters.ffmpeg_source import SubprocessAudioSource
from talk_time.config import TalkTimeConfig
from talk_time.domain.coordinator import SessionCoordinator
from talk_time.domain.session import Session, StartRequest
from talk_time.factory import create_coordinator, create_device_lister, create_source_factory


def config(**kwargs) -> TalkTimeConfig:
    return TalkTimeConfig(_env_file=None, deepgram_api_key="key", **kwargs)


class TestSourceFactory:
    def test_url_session_reads_resolved_media(self):
        session = Session.for_request(StartRequest(remote_url="https://youtu.be/x"), "YouTube")
        session.source_descriptor = "https://cdn/a.m4a"

        source = create_source_factory(config(ffmpeg_path="/usr/bin/ffmpeg"))(session)

        assert isinstance(source, SubprocessAudioSource)
        assert source._args[0] == "/usr/bin/ffmpeg"
        assert "https://cdn/a.m4a" in source._args

    def test_mic_session_uses_requested_device(self):
        session = Session.for_request(StartRequest(use_microphone=True, device_id="mic-2"), "linux")

        source = create_source_factory(config(capture_device="fallback"))(session)

        assert any("mic-2" in a for a in source._args)

    def test_mic_session_falls_back_to_configured_device(self):
        session = Session.for_request(StartRequest(use_microphone=True), "linux")

        source = create_source_factory(config(capture_device="usb-mic"))(session)

        assert any("usb-mic" in a for a in source._args)

    def test_grace_periods_come_from_config(self):
        session = Session.for_request(StartRequest(use_microphone=True), "linux")

        source = create_source_factory(
            config(interrupt_grace_seconds=0.1, terminate_grace_seconds=0.2)
        )(session)

        assert source._interrupt_grace_seconds == 0.1
        assert source._terminate_grace_seconds == 0.2


class TestWiring:
    def test_create_coordinator(self):
        coordinator = create_coordinator(config(open_timeout_seconds=3.0))

        assert isinstance(coordinator, SessionCoordinator)
        assert coordinator._open_timeout_seconds == 3.0
        assert coordinator.snapshot().status == "idle"

    def test_ffmpeg_device_lister(self):
        assert isinstance(create_device_lister(config()), FfmpegDeviceLister)
