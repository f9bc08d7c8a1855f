from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TalkTimeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TALK_TIME_", env_file=".env", extra="ignore", populate_by_name=True
    )

    deepgram_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("TALK_TIME_DEEPGRAM_API_KEY", "DEEPGRAM_API_KEY"),
    )
    deepgram_api_key_file: str = ""
    deepgram_model: str = "nova-2"
    language: str = "en"

    host: str = "127.0.0.1"
    port: int = Field(default=3000, validation_alias=AliasChoices("TALK_TIME_PORT", "PORT"))

    capture_backend: Literal["ffmpeg", "sounddevice"] = "ffmpeg"
    capture_device: str | None = None
    ffmpeg_path: str = "ffmpeg"
    ytdlp_path: str = "yt-dlp"
    streamlink_path: str = "streamlink"

    open_timeout_seconds: float = 15.0
    drain_timeout_seconds: float = 10.0
    interrupt_grace_seconds: float = 0.5
    terminate_grace_seconds: float = 1.0
    resolve_timeout_seconds: float = 30.0

    subscriber_queue_size: int = 256
    print_transcript: bool = True
    log_file: str = ""

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def resolved_api_key(self) -> str:
        if self.deepgram_api_key:
            return self.deepgram_api_key.strip()
        return self.read_secret(self.deepgram_api_key_file)

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
