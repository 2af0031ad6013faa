# util/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from config.settings import settings

logging.captureWarnings(True)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Child logger that receives forwarded yt-dlp / ffmpeg stderr lines.
TOOLS_LOGGER = "tools"


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[37m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colorize a copy so file handlers sharing the record stay plain
        lvl = record.levelname
        record.levelname = f"{self.COLORS.get(lvl, self.RESET)}{lvl}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = lvl


def _level() -> int:
    return getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)


def _console_handler(level: int) -> logging.Handler:
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    if sys.stdout.isatty():
        ch.setFormatter(ColoredFormatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    else:
        ch.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    return ch


def _file_handler(level: int) -> logging.Handler:
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    fh = RotatingFileHandler(
        os.path.join(settings.LOG_DIR, settings.LOG_FILE_NAME),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    return fh


def tool_logger(tool: str) -> logging.Logger:
    """Logger for a subprocess' diagnostic output, e.g. ``tools.ffmpeg``."""
    return logging.getLogger(f"{TOOLS_LOGGER}.{tool}")


def init_logger() -> logging.Logger:
    """
    Idempotent logger init:
    - Always logs to stdout; colors only when attached to a terminal.
    - Writes to LOG_DIR/LOG_FILE_NAME when settings.LOG_TO_FILE is True,
      rotated by size.
    - Respects settings.LOG_LEVEL.
    """
    root = logging.getLogger()
    if getattr(root, "_mediastream_inited", False):
        return logging.getLogger(settings.LOGGER_NAME)

    level = _level()
    root.setLevel(level)

    # Clear any default handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    root.addHandler(_console_handler(level))
    if settings.LOG_TO_FILE:
        root.addHandler(_file_handler(level))

    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger(TOOLS_LOGGER).setLevel(level)

    root._mediastream_inited = True  # type: ignore[attr-defined]
    logger = logging.getLogger(settings.LOGGER_NAME)
    logger.debug("Logger initialized", extra={"component": "bootstrap"})
    return logger
