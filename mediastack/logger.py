from logging.handlers import RotatingFileHandler
import logging, os, sys


STATUS_SYMBOLS = {
    "section": "=>",
    "ok": "✓",
    "warn": "!",
    "fail": "✗",
    "skip": "-",
}

STATUS_COLORS = {
    "section": "\033[1;34m",
    "ok": "\033[1;32m",
    "warn": "\033[1;33m",
    "fail": "\033[1;31m",
    "skip": "\033[1;33m",
}

LEVEL_COLORS = {
    logging.DEBUG: "\033[0;36m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[1;31m",
    logging.CRITICAL: "\033[1;31m",
}

RESET = "\033[0m"


class StatusFormatter(logging.Formatter):
    """
    Console formatter that renders status records as indented, prefixed lines.

    Records logged with ``extra={"status": ...}`` get the matching symbol
    (``✓``, ``!``, ``✗``, ``-``) and colour; ``section`` records are printed
    as a blank line followed by an ``=>`` header. Everything else falls back
    to a plain message coloured by level.
    """

    def __init__(self, use_color: bool = True):
        super().__init__("%(message)s")
        self.use_color = use_color

    def _paint(self, text: str, color: str | None) -> str:
        if not self.use_color or not color:
            return text
        return f"{color}{text}{RESET}"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        status = getattr(record, "status", None)
        if status == "section":
            return "\n" + self._paint(f"=> {message}", STATUS_COLORS[status])
        if status in STATUS_SYMBOLS:
            if status == "skip":
                message = f"{message} (skipped)"
            line = f"   {STATUS_SYMBOLS[status]} {message}"
            return self._paint(line, STATUS_COLORS[status])
        return self._paint(message, LEVEL_COLORS.get(record.levelno))


class PlainFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            "%(asctime)s - %(levelname)s - %(message)s", datefmt="%b %d, %Y %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        status = getattr(record, "status", None)
        message = super().format(record)
        if status in STATUS_SYMBOLS:
            prefix = f"{record.levelname} - "
            message = message.replace(prefix, f"{prefix}{STATUS_SYMBOLS[status]} ", 1)
        return message


def _wants_color(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def get_logger(
    name: str = "media_stack",
    level: str | int = "INFO",
    log_file: str | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level if isinstance(level, int) else level.upper())
    logger.propagate = False

    if not any(getattr(h, "_media_stack_console", False) for h in logger.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(StatusFormatter(use_color=_wants_color(sys.stdout)))
        console._media_stack_console = True
        logger.addHandler(console)

    if log_file:
        add_file_handler(logger, log_file, max_bytes, backup_count)

    return logger


def add_file_handler(
    logger: logging.Logger,
    log_file: str,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    log_file = os.path.abspath(os.path.expanduser(log_file))
    for handler in logger.handlers:
        if getattr(handler, "baseFilename", None) == log_file:
            return
    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setFormatter(PlainFormatter())
    logger.addHandler(handler)


def set_level(logger: logging.Logger, level: str | int) -> None:
    logger.setLevel(level if isinstance(level, int) else level.upper())


def set_console_stream(logger: logging.Logger, stream) -> None:
    for handler in logger.handlers:
        if getattr(handler, "_media_stack_console", False):
            handler.setStream(stream)
            handler.setFormatter(StatusFormatter(use_color=_wants_color(stream)))
