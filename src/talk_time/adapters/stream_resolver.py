import asyncio
import logging
from dataclasses import dataclass

from talk_time.domain.errors import ResolutionError

logger = logging.getLogger(__name__)

RESOLVE_TIMEOUT_SECONDS = 30.0
RESOLUTION_FAILED_MESSAGE = (
    "Failed to resolve a direct media URL. "
    "Ensure yt-dlp or streamlink is installed and the URL is a valid livestream."
)


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    returncode: int


class CommandFailedError(Exception):
    pass


async def run_command(
    args: list[str],
    timeout: float = RESOLVE_TIMEOUT_SECONDS,
    allow_non_zero_exit: bool = False,
) -> CommandResult:
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        raise CommandFailedError(f"{args[0]} timed out after {timeout:.0f}s")

    result = CommandResult(
        stdout=stdout.decode(errors="replace").strip(),
        stderr=stderr.decode(errors="replace").strip(),
        returncode=process.returncode,
    )
    if result.returncode != 0 and not allow_non_zero_exit:
        raise CommandFailedError(
            f"{args[0]} exited with code {result.returncode}: {result.stderr or result.stdout}"
        )
    return result


class StreamUrlResolver:
    """Turns a livestream page URL into a direct media URL ffmpeg can read."""

    def __init__(
        self,
        ytdlp_path: str = "yt-dlp",
        streamlink_path: str = "streamlink",
        timeout: float = RESOLVE_TIMEOUT_SECONDS,
    ) -> None:
        self._ytdlp_path = ytdlp_path
        self._streamlink_path = streamlink_path
        self._timeout = timeout

    async def resolve(self, page_url: str) -> str:
        media_url = await self._try_ytdlp(page_url)
        if media_url:
            return media_url
        media_url = await self._try_streamlink(page_url)
        if media_url:
            return media_url
        raise ResolutionError(RESOLUTION_FAILED_MESSAGE)

    async def _try_ytdlp(self, page_url: str) -> str | None:
        try:
            result = await run_command(
                [self._ytdlp_path, "-g", "-f", "bestaudio", page_url], timeout=self._timeout
            )
        except (OSError, CommandFailedError) as exc:
            logger.info("yt-dlp could not resolve %s: %s", page_url, exc)
            return None
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return lines[0] if lines else None

    async def _try_streamlink(self, page_url: str) -> str | None:
        try:
            result = await run_command(
                [self._streamlink_path, "--stream-url", page_url, "best"], timeout=self._timeout
            )
        except (OSError, CommandFailedError) as exc:
            logger.info("streamlink could not resolve %s: %s", page_url, exc)
            return None
        return result.stdout.strip() or None
