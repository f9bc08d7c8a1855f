import re
import sys
from urllib.parse import urlparse

UNKNOWN_PLATFORM = "unknown"

_KNOWN_PLATFORMS = (
    (re.compile(r"(youtube\.com|youtu\.be)$"), "YouTube"),
    (re.compile(r"twitch\.tv$"), "Twitch"),
    (re.compile(r"kick\.com$"), "Kick"),
)


def detect_platform_from_url(url: str) -> str:
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return UNKNOWN_PLATFORM
    if not hostname:
        return UNKNOWN_PLATFORM
    for pattern, label in _KNOWN_PLATFORMS:
        if pattern.search(hostname):
            return label
    return hostname


def microphone_platform_label() -> str:
    return sys.platform
