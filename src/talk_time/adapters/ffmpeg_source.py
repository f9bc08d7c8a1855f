import asyncio
import logging
import signal
import sys
from collections.abc import AsyncIterator

from talk_time.domain.session import CHANNELS, SAMPLE_RATE

logger = logging.getLogger(__name__)

STDOUT_READ_CHUNK_SIZE = 8192
INTERRUPT_GRACE_SECONDS = 0.5
TERMINATE_GRACE_SECONDS = 1.0

_PCM_OUTPUT_ARGS = [
    "-ac", str(CHANNELS),
    "-ar", str(SAMPLE_RATE),
    "-f", "s16le",
    "-acodec", "pcm_s16le",
    "pipe:1",
]


def build_url_args(media_url: str, ffmpeg_path: str = "ffmpeg") -> list[str]:
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel", "error",
        "-i", media_url,
        "-vn",
        *_PCM_OUTPUT_ARGS,
    ]


def build_mic_args(
    device: str | None = None,
    ffmpeg_path: str = "ffmpeg",
    platform: str = sys.platform,
) -> list[str]:
    if platform == "darwin":
        input_format, input_name = "avfoundation", device or ":0"
    elif platform == "win32":
        input_format, input_name = "dshow", f"audio={device or 'default'}"
    else:
        input_format, input_name = "pulse", device or "default"
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel", "error",
        "-f", input_format,
        "-i", input_name,
        *_PCM_OUTPUT_ARGS,
    ]


class SubprocessAudioSource:
    """Reads raw PCM from a child process's stdout.

    ``terminate`` escalates: SIGINT, then SIGTERM after ``interrupt_grace_seconds``,
    then SIGKILL after a further ``terminate_grace_seconds``. Pending steps are
    cancelled once the process has exited.
    """

    def __init__(
        self,
        args: list[str],
        interrupt_grace_seconds: float = INTERRUPT_GRACE_SECONDS,
        terminate_grace_seconds: float = TERMINATE_GRACE_SECONDS,
    ) -> None:
        self._args = args
        self._interrupt_grace_seconds = interrupt_grace_seconds
        self._terminate_grace_seconds = terminate_grace_seconds
        self._process: asyncio.subprocess.Process | None = None
        self._exit_watcher: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._escalation: list[asyncio.TimerHandle] = []
        self._stderr_tail: list[str] = []
        self._terminate_requested = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        if self._terminate_requested:
            logger.info("Not starting %s, terminate already requested", self._args[0])
            return
        self._process = await asyncio.create_subprocess_exec(
            *self._args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._exit_watcher = asyncio.create_task(self._watch_exit())
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.info("Started %s (pid=%d)", self._args[0], self._process.pid)
        if self._terminate_requested:
            await self.terminate()

    async def read_chunks(self) -> AsyncIterator[bytes]:
        if self._process is None or self._process.stdout is None:
            return
        while True:
            chunk = await self._process.stdout.read(STDOUT_READ_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    async def wait(self) -> int | None:
        if self._process is None:
            return None
        returncode = await self._process.wait()
        if returncode and self._stderr_tail:
            logger.warning("%s stderr: %s", self._args[0], " | ".join(self._stderr_tail))
        return returncode

    async def terminate(self) -> None:
        self._terminate_requested = True
        if self._process is None or self._process.returncode is not None:
            return
        if self._escalation:
            return
        self._send_signal(signal.SIGINT)
        loop = asyncio.get_running_loop()
        self._escalation = [
            loop.call_later(self._interrupt_grace_seconds, self._send_signal, signal.SIGTERM),
            loop.call_later(
                self._interrupt_grace_seconds + self._terminate_grace_seconds,
                self._send_signal,
                signal.SIGKILL if hasattr(signal, "SIGKILL") else signal.SIGTERM,
            ),
        ]

    def _send_signal(self, sig: int) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        logger.debug("Sending %s to pid %d", signal.Signals(sig).name, process.pid)
        try:
            if sys.platform == "win32" and sig == signal.SIGINT:
                process.terminate()
            else:
                process.send_signal(sig)
        except ProcessLookupError:
            pass

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()
        for handle in self._escalation:
            handle.cancel()
        logger.info("%s exited with code %s", self._args[0], returncode)

    async def _drain_stderr(self) -> None:
        if self._process.stderr is None:
            return
        async for line in self._process.stderr:
            text = line.decode(errors="replace").strip()
            if text:
                self._stderr_tail = (self._stderr_tail + [text])[-5:]
