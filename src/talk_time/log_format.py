import logging
import re
import sys

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"

LEVEL_STYLES = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

SPEAKER_STYLES = (CYAN, YELLOW, MAGENTA, BLUE, GREEN)

PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_TRANSITION = re.compile(r"^Session \d+: \w+ -> \w+$")
_SPEAKER = re.compile(r"\[Speaker (\w+)\]")

MESSAGE_RULES = (
    (lambda msg: bool(_TRANSITION.match(msg)), BOLD + CYAN),
    (lambda msg: "connection opened" in msg, BOLD + GREEN),
    (lambda msg: msg.startswith("Stopping session"), MAGENTA),
    (lambda msg: msg.startswith("Resolv"), BLUE),
)


def speaker_style(speaker: str) -> str:
    if not speaker.isdigit():
        return DIM
    return SPEAKER_STYLES[int(speaker) % len(SPEAKER_STYLES)]


class ColoredFormatter(logging.Formatter):
    """Terminal formatter: level colors plus highlighting for session milestones.

    Transcript lines (``Final: ...``) are tinted by speaker so a diarized
    conversation stays readable in the log.
    """

    def format(self, record: logging.LogRecord) -> str:
        level_style = LEVEL_STYLES.get(record.levelno, "")
        timestamp = self.formatTime(record, self.datefmt)
        logger_name = record.name.rsplit(".", 1)[-1]
        msg = self._style_message(record)
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return (
            f"{DIM}{timestamp}{RESET} {level_style}{record.levelname:<7}{RESET} "
            f"{DIM}{logger_name:<18}{RESET} {msg}"
        )

    def _style_message(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if msg.startswith("Final:"):
            match = _SPEAKER.search(msg)
            style = speaker_style(match.group(1)) if match else CYAN
            return f"{style}{msg}{RESET}"
        for matches, style in MESSAGE_RULES:
            if matches(msg):
                return f"{style}{msg}{RESET}"
        if record.levelno == logging.DEBUG:
            return f"{DIM}{msg}{RESET}"
        if record.levelno >= logging.WARNING:
            return f"{LEVEL_STYLES[record.levelno]}{msg}{RESET}"
        return msg


def configure_logging(verbose: bool, log_file: str = "") -> None:
    console = logging.StreamHandler(sys.stderr)
    if sys.stderr.isatty():
        console.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    else:
        console.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [console]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=handlers, force=True)

    # Third-party transports are chatty at DEBUG.
    for noisy in ("websockets", "httpcore", "httpx", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)
