import asyncio
import logging
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from talk_time.domain.session import CHANNELS, SAMPLE_RATE

logger = logging.getLogger(__name__)

FRAME_DURATION_MS = 100
QUEUE_FRAMES = 100
INT16_SCALE = 32767


def float_to_pcm16(samples: np.ndarray) -> bytes:
    return (np.clip(samples, -1.0, 1.0) * INT16_SCALE).astype("<i2").tobytes()


def find_input_device(query: str | int | None) -> int | None:
    """Match a device index or a case-insensitive name fragment to a PortAudio input."""
    if query is None or query == "" or query == "default":
        return None
    if isinstance(query, int) or query.isdigit():
        return int(query)
    needle = query.lower()
    for index, dev in enumerate(sd.query_devices()):
        if dev["max_input_channels"] > 0 and needle in dev["name"].lower():
            logger.info("Capture device '%s' -> #%d %s", query, index, dev["name"])
            return index
    logger.warning("No input device matches '%s', using the system default", query)
    return None


class SounddeviceAudioSource:
    """In-process microphone capture through PortAudio.

    The PortAudio callback thread hands 16-bit PCM frames to the event loop
    over a janus queue. Frames are dropped, and counted, while the queue is full.
    """

    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = SAMPLE_RATE,
        frame_duration_ms: int = FRAME_DURATION_MS,
    ) -> None:
        self._device = device
        self._sample_rate = sample_rate
        self._blocksize = sample_rate * frame_duration_ms // 1000
        self._stream: sd.InputStream | None = None
        self._frames: janus.Queue[bytes] | None = None
        self._dropped_frames = 0
        self._stopped = asyncio.Event()

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    async def start(self) -> None:
        frames: janus.Queue[bytes] = janus.Queue(maxsize=QUEUE_FRAMES)
        self._frames = frames

        def on_audio(indata: np.ndarray, frame_count: int, time_info, status) -> None:
            if status:
                logger.warning("PortAudio status: %s", status)
            try:
                frames.sync_q.put_nowait(float_to_pcm16(indata[:, 0]))
            except janus.SyncQueueFull:
                self._dropped_frames += 1
            except janus.SyncQueueShutDown:
                pass

        device = find_input_device(self._device)
        self._stream = sd.InputStream(
            device=device,
            samplerate=self._sample_rate,
            channels=CHANNELS,
            dtype="float32",
            blocksize=self._blocksize,
            callback=on_audio,
        )
        self._stream.start()
        logger.info("Microphone capture started (device=%s, %d Hz)", device, self._sample_rate)

    async def read_chunks(self) -> AsyncIterator[bytes]:
        frames = self._frames
        if frames is None:
            return
        while not self._stopped.is_set():
            try:
                yield await asyncio.wait_for(frames.async_q.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except janus.AsyncQueueShutDown:
                break

    async def terminate(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        if self._frames is not None:
            self._frames.close()
            await self._frames.wait_closed()
        if self._dropped_frames:
            logger.warning("Dropped %d audio frames while the consumer lagged", self._dropped_frames)
        logger.info("Microphone capture stopped")

    async def wait(self) -> int | None:
        await self._stopped.wait()
        return 0


def list_sounddevice_inputs() -> list[tuple[str, str]]:
    return [
        (str(index), dev["name"])
        for index, dev in enumerate(sd.query_devices())
        if dev["max_input_channels"] > 0
    ]
