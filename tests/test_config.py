import pytest

from talk_time.config import TalkTimeConfig

ENV_VARS = (
    "DEEPGRAM_API_KEY",
    "TALK_TIME_DEEPGRAM_API_KEY",
    "TALK_TIME_DEEPGRAM_API_KEY_FILE",
    "PORT",
    "TALK_TIME_PORT",
    "TALK_TIME_HOST",
    "TALK_TIME_CAPTURE_BACKEND",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def load(**kwargs) -> TalkTimeConfig:
    return TalkTimeConfig(_env_file=None, **kwargs)


class TestTalkTimeConfig:
    def test_defaults(self):
        config = load()

        assert config.port == 3000
        assert config.host == "127.0.0.1"
        assert config.capture_backend == "ffmpeg"
        assert config.open_timeout_seconds == 15.0
        assert config.base_url == "http://127.0.0.1:3000"

    def test_plain_deepgram_key_env(self, monkeypatch):
        monkeypatch.setenv("DEEPGRAM_API_KEY", "abc")

        assert load().resolved_api_key() == "abc"

    def test_prefixed_key_env(self, monkeypatch):
        monkeypatch.setenv("TALK_TIME_DEEPGRAM_API_KEY", "xyz")

        assert load().deepgram_api_key == "xyz"

    def test_port_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")

        assert load().port == 8080

    def test_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("TALK_TIME_CAPTURE_BACKEND", "sounddevice")

        assert load().capture_backend == "sounddevice"

    def test_key_from_file(self, tmp_path):
        secret = tmp_path / "deepgram"
        secret.write_text("from-file\n")

        config = load(deepgram_api_key_file=str(secret))

        assert config.resolved_api_key() == "from-file"

    def test_missing_key_file(self, tmp_path):
        config = load(deepgram_api_key_file=str(tmp_path / "nope"))

        assert config.resolved_api_key() == ""

    def test_explicit_key_wins_over_file(self, tmp_path):
        secret = tmp_path / "deepgram"
        secret.write_text("from-file")

        config = load(deepgram_api_key=" direct ", deepgram_api_key_file=str(secret))

        assert config.resolved_api_key() == "direct"
