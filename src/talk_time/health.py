import logging
import shutil
from dataclasses import dataclass

from talk_time.config import TalkTimeConfig

logger = logging.getLogger(__name__)

# A failure in any of these aborts server startup; the rest only warn.
CRITICAL_CHECKS = frozenset({"api_keys", "ffmpeg", "audio_device"})


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str

    @property
    def critical(self) -> bool:
        return not self.passed and self.name in CRITICAL_CHECKS


def run_startup_checks(config: TalkTimeConfig) -> list[HealthCheckResult]:
    results = [
        _check_api_keys(config),
        _check_ffmpeg(config),
        _check_resolvers(config),
        _check_audio_device(config),
    ]

    failed = [r.name for r in results if not r.passed]
    logger.info("Health check: %d/%d passed", len(results) - len(failed), len(results))
    for result in results:
        if result.passed:
            logger.info("  [OK] %s: %s", result.name, result.detail)
        else:
            logger.warning("  [FAIL] %s: %s", result.name, result.detail)
    if failed:
        logger.debug("Failed checks: %s", ", ".join(failed))

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(r.critical for r in results)


def _check_api_keys(config: TalkTimeConfig) -> HealthCheckResult:
    name = "api_keys"
    if not config.resolved_api_key():
        source = config.deepgram_api_key_file or "DEEPGRAM_API_KEY"
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"Missing Deepgram API key ({source}). Set it in your shell or in a .env file",
        )
    return HealthCheckResult(name=name, passed=True, detail="Deepgram API key loaded")


def _check_ffmpeg(config: TalkTimeConfig) -> HealthCheckResult:
    name = "ffmpeg"
    path = shutil.which(config.ffmpeg_path)
    if path:
        return HealthCheckResult(name=name, passed=True, detail=f"Found at {path}")
    if config.capture_backend == "sounddevice":
        return HealthCheckResult(
            name="ffmpeg_optional",
            passed=False,
            detail=f"'{config.ffmpeg_path}' not found, URL sessions will fail",
        )
    return HealthCheckResult(name=name, passed=False, detail=f"'{config.ffmpeg_path}' not found in PATH")


def _check_resolvers(config: TalkTimeConfig) -> HealthCheckResult:
    name = "resolvers"
    found = [tool for tool in (config.ytdlp_path, config.streamlink_path) if shutil.which(tool)]
    if not found:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail="Neither yt-dlp nor streamlink found, URL sessions will fail",
        )
    return HealthCheckResult(name=name, passed=True, detail=f"Available: {', '.join(found)}")


def _check_audio_device(config: TalkTimeConfig) -> HealthCheckResult:
    name = "audio_device"
    if config.capture_backend != "sounddevice":
        return HealthCheckResult(name=name, passed=True, detail="Skipped (capture via ffmpeg)")
    try:
        import sounddevice as sd

        devices = sd.query_devices()
        device_name = config.capture_device
        if device_name:
            for dev in devices:
                if device_name.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                    return HealthCheckResult(name=name, passed=True, detail=f"Device '{device_name}' found")
        default = sd.query_devices(kind="input")
        return HealthCheckResult(name=name, passed=True, detail=f"Default input: {default['name']}")
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
