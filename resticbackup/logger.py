"""Logging configuration for restic-backup.

Every event is appended to the log file as a plain-text line::

    [YYYY-MM-DD HH:MM:SS] [LEVEL] message

and mirrored to the console, colourised when the console is a terminal.
Besides the standard levels two extra ones are registered: SUCCESS and
FAILURE. The log file is rotated once, before a command runs, when it has
grown past the size limit.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Optional


# Logger name for the resticbackup package
LOGGER_NAME = "resticbackup"

# Rotation settings
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 10

SUCCESS = logging.INFO + 5
FAILURE = logging.ERROR + 1

logging.addLevelName(SUCCESS, "SUCCESS")
logging.addLevelName(FAILURE, "FAILURE")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ATTEMPT_PREFIX = "ATTEMPT: "
SIZE_PREFIX = "SIZE: "

COLOR_RESET = "\033[0m"
COLOR_RED = "\033[0;31m"
COLOR_GREEN = "\033[0;32m"
COLOR_YELLOW = "\033[0;33m"
COLOR_BLUE = "\033[0;34m"
COLOR_CYAN = "\033[0;36m"


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


class ColorFormatter(logging.Formatter):
    """
    Formatter that wraps console lines in ANSI colour codes.

    Colour is an output-channel decoration only: the file handler uses a
    plain formatter, so the on-disk log never contains escape codes.
    """

    def __init__(self, use_color: bool = True):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def _color_for(self, record: logging.LogRecord) -> str:
        if record.levelno == SUCCESS:
            return COLOR_GREEN
        if record.levelno >= FAILURE:
            return COLOR_RED
        if record.levelno == logging.INFO:
            message = record.getMessage()
            if message.startswith(ATTEMPT_PREFIX):
                return COLOR_CYAN
            if message.startswith(SIZE_PREFIX):
                return COLOR_YELLOW
            return COLOR_BLUE
        return ""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        if not self.use_color:
            return line
        color = self._color_for(record)
        if not color:
            return line
        return f"{color}{line}{COLOR_RESET}"


def _ensure_log_directory(log_path: Path) -> None:
    """Ensure the parent directory for a log file exists."""
    log_dir = log_path.parent
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {log_dir}: {e}")


def rotate_log(
    log_file: Path,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> bool:
    """
    Rotate the log file if it has grown past ``max_bytes``.

    The active log becomes ``.1``, existing ``.1`` .. ``.9`` move up by one
    and the previous ``.10`` is dropped. Rotation is best effort: an
    OSError is reported as a warning and the active log is kept.

    Args:
        log_file: Active log file
        max_bytes: Size threshold in bytes
        backup_count: Number of rotated files to keep

    Returns:
        True if the log was rotated
    """
    try:
        if not log_file.is_file() or log_file.stat().st_size <= max_bytes:
            return False
    except OSError:
        return False

    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        delay=True,
    )
    try:
        handler.doRollover()
        return True
    except OSError as e:
        get_logger().warning(f"Log rotation failed for {log_file}: {e}")
        return False
    finally:
        handler.close()


def setup_logging(
    log_file: Path,
    console_stream: Optional[IO[str]] = None,
    console: bool = True,
    use_color: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure logging for restic-backup.

    Sets up logging with:
    - A file handler writing plain lines at DEBUG and above
    - A console handler at INFO and above, colourised on a terminal

    Args:
        log_file: Path to the log file
        console_stream: Stream for console output (default sys.stdout)
        console: Whether to mirror log lines to the console at all
        use_color: Force colour on or off (default: stream is a TTY)

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If the log directory cannot be created or opened
    """
    log_file = Path(os.path.expanduser(str(log_file)))
    _ensure_log_directory(log_file)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # maxBytes=0 disables rollover while a command runs
    try:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=0,
            backupCount=DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        raise LoggingError(f"Cannot open log file {log_file}: {e}")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    if console:
        stream = console_stream if console_stream is not None else sys.stdout
        if use_color is None:
            use_color = hasattr(stream, "isatty") and stream.isatty()
        console_handler = logging.StreamHandler(stream)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(ColorFormatter(use_color=use_color))
        logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the resticbackup logger instance."""
    return logging.getLogger(LOGGER_NAME)


def log_info(logger: logging.Logger, message: str) -> None:
    logger.info(message)


def log_attempt(logger: logging.Logger, message: str) -> None:
    """Log the start of an operation."""
    logger.info(f"{ATTEMPT_PREFIX}{message}")


def log_success(logger: logging.Logger, message: str) -> None:
    logger.log(SUCCESS, message)


def log_failure(logger: logging.Logger, message: str) -> None:
    logger.log(FAILURE, message)


def log_size(logger: logging.Logger, message: str) -> None:
    """Log a size/statistics summary line."""
    logger.info(f"{SIZE_PREFIX}{message}")


def log_tool_output(logger: logging.Logger, output: str) -> None:
    """
    Log raw restic output line by line (DEBUG, so file only).
    """
    if output.strip():
        for line in output.strip().split("\n"):
            logger.debug(f"restic: {line}")
