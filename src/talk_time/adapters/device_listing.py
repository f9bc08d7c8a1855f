import logging
import re
import sys

from talk_time.adapters.stream_resolver import CommandFailedError, run_command
from talk_time.ports.devices import InputDevice

logger = logging.getLogger(__name__)

LIST_TIMEOUT_SECONDS = 10.0


def default_device(platform: str = sys.platform) -> InputDevice:
    if platform == "darwin":
        return InputDevice(id=":0", label="Default (:0)")
    return InputDevice(id="default", label="Default")


def parse_avfoundation_devices(output: str) -> list[InputDevice]:
    devices = []
    in_audio = False
    for line in output.splitlines():
        if "AVFoundation audio devices" in line:
            in_audio = True
            continue
        if "AVFoundation video devices" in line:
            in_audio = False
            continue
        if not in_audio:
            continue
        match = re.search(r"\[(\d+)\]\s+(.+)", line)
        if match:
            devices.append(InputDevice(id=f":{match.group(1)}", label=match.group(2).strip()))
    return devices


def parse_dshow_devices(output: str) -> list[InputDevice]:
    devices = []
    in_audio = False
    for line in output.splitlines():
        if "DirectShow audio devices" in line:
            in_audio = True
            continue
        if "DirectShow video devices" in line:
            in_audio = False
            continue
        if not in_audio or "Alternative name" in line:
            continue
        match = re.search(r'"([^"]+)"', line)
        if match:
            devices.append(InputDevice(id=match.group(1), label=match.group(1)))
    return devices


def parse_pactl_sources(output: str) -> list[InputDevice]:
    devices = []
    for line in output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) >= 2 and parts[1]:
            devices.append(InputDevice(id=parts[1], label=parts[1]))
    return devices


class FfmpegDeviceLister:
    def __init__(self, ffmpeg_path: str = "ffmpeg", platform: str = sys.platform) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._platform = platform

    async def list_devices(self) -> list[InputDevice]:
        try:
            devices = await self._enumerate()
        except (OSError, CommandFailedError) as exc:
            logger.warning("Failed to list input devices: %s", exc)
            devices = []
        return devices or [default_device(self._platform)]

    async def _enumerate(self) -> list[InputDevice]:
        if self._platform == "darwin":
            result = await run_command(
                [self._ffmpeg_path, "-f", "avfoundation", "-list_devices", "true", "-i", ""],
                timeout=LIST_TIMEOUT_SECONDS,
                allow_non_zero_exit=True,
            )
            return parse_avfoundation_devices(result.stderr)
        if self._platform == "win32":
            result = await run_command(
                [self._ffmpeg_path, "-list_devices", "true", "-f", "dshow", "-i", "dummy"],
                timeout=LIST_TIMEOUT_SECONDS,
                allow_non_zero_exit=True,
            )
            return parse_dshow_devices(result.stderr)
        result = await run_command(
            ["pactl", "list", "short", "sources"], timeout=LIST_TIMEOUT_SECONDS
        )
        return parse_pactl_sources(result.stdout)


class SounddeviceDeviceLister:
    async def list_devices(self) -> list[InputDevice]:
        from talk_time.adapters.sounddevice_source import list_sounddevice_inputs

        try:
            inputs = list_sounddevice_inputs()
        except Exception as exc:
            logger.warning("Failed to query PortAudio devices: %s", exc)
            inputs = []
        devices = [InputDevice(id=index, label=name) for index, name in inputs]
        return devices or [default_device()]
