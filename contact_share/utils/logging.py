"""
Logging configuration module for contact_share.

Provides centralized logging configuration with support for:
- Console output on stderr, colored when the terminal allows it
- A dated log file per day in the config directory
- HTTP traffic logging in verbose mode with CloudKit tokens masked
"""

import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from contact_share.utils.paths import resolve_config_dir

# Root logger name for the package hierarchy
LOGGER_NAME = "contact_share"

# Logger used by requests for connection and request lines
HTTP_LOGGER_NAME = "urllib3"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log file name prefix, suffixed with the date
LOG_FILE_PREFIX = "contact_share_"

# Environment variable names
ENV_LOG_LEVEL = "CONTACT_SHARE_LOG_LEVEL"
ENV_LOG_FILE = "CONTACT_SHARE_LOG_FILE"

# Query parameters carrying credentials in CloudKit request URLs
TOKEN_PATTERN = re.compile(r"(ckAPIToken|ckWebAuthToken)=[^&\s\"']+")
MASK = "***"


class TokenRedactingFilter(logging.Filter):
    """Mask CloudKit tokens in rendered log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = TOKEN_PATTERN.sub(rf"\1={MASK}", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name on terminals that support it.

    Honors NO_COLOR (https://no-color.org/) and TERM=dumb.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        stream = sys.stderr
        if not getattr(stream, "isatty", None) or not stream.isatty():
            return False
        if os.environ.get("NO_COLOR"):
            return False
        return os.environ.get("TERM", "") != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        if color is None:
            return super().format(record)

        # Copy so the file handler sees the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def resolve_log_level(verbose: bool = False) -> int:
    """
    Determine the console log level.

    Verbose mode always means DEBUG. Otherwise CONTACT_SHARE_LOG_LEVEL is
    consulted (DEBUG, INFO, WARNING/WARN, ERROR, CRITICAL); anything else
    falls back to INFO.
    """
    if verbose:
        return logging.DEBUG

    name = os.environ.get(ENV_LOG_LEVEL, "INFO").strip().upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def log_file_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Get today's log file path.

    CONTACT_SHARE_LOG_FILE overrides the location; "none" or "disabled"
    turns file logging off.

    Returns:
        Path to the log file, or None if file logging is disabled
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is not None:
        if override.strip().lower() in ("", "none", "disabled"):
            return None
        return Path(override).expanduser()

    directory = log_dir or resolve_config_dir() / "logs"
    return directory / f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d}.log"


def _console_handler(level: int, verbose: bool, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    fmt = FILE_FORMAT if verbose else CONSOLE_FORMAT
    handler.setFormatter(ColoredFormatter(fmt, DATE_FORMAT, use_colors=use_colors))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure logging for the contact_share application.

    Replaces any handlers from a previous call. In verbose mode the HTTP
    request lines logged by urllib3 are routed to the same handlers.

    Args:
        verbose: Log DEBUG messages and HTTP traffic to the console
        log_dir: Directory for the dated log file (default: <config dir>/logs)
        enable_file_logging: If False, only log to the console
        use_colors: Color the console level names when supported

    Returns:
        The contact_share package logger

    Example:
        setup_logging(verbose=True)
        setup_logging(log_dir=Path("/path/to/logs"))
    """
    level = resolve_log_level(verbose)

    handlers = [_console_handler(level, verbose, use_colors)]
    file_error = None
    file_path = log_file_path(log_dir) if enable_file_logging else None
    if file_path is not None:
        try:
            handlers.append(_file_handler(file_path))
        except OSError as e:
            file_error = e

    redactor = TokenRedactingFilter()
    for handler in handlers:
        handler.addFilter(redactor)

    logger = logging.getLogger(LOGGER_NAME)
    http_logger = logging.getLogger(HTTP_LOGGER_NAME)

    for target in (logger, http_logger):
        target.handlers.clear()
        target.propagate = False

    logger.setLevel(logging.DEBUG if file_path else level)
    for handler in handlers:
        logger.addHandler(handler)

    if verbose:
        http_logger.setLevel(logging.DEBUG)
        for handler in handlers:
            http_logger.addHandler(handler)
    else:
        http_logger.setLevel(logging.WARNING)
        http_logger.propagate = True

    if file_error is not None:
        logger.warning(f"Could not create log file {file_path}: {file_error}")
    elif file_path is not None:
        logger.debug(f"Log file: {file_path}")

    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Delete old log files, keeping the newest ``keep_count``.

    Returns:
        Number of files deleted (0 when keep_count is 0 or less)
    """
    if keep_count <= 0:
        return 0

    directory = log_dir or resolve_config_dir() / "logs"
    if not directory.is_dir():
        return 0

    newest_first = sorted(
        directory.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    deleted = 0
    for path in newest_first[keep_count:]:
        try:
            path.unlink()
        except OSError as e:
            logging.getLogger(LOGGER_NAME).debug(f"Could not delete {path}: {e}")
            continue
        deleted += 1
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Get a logger inside the contact_share hierarchy."""
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = [
    "CONSOLE_FORMAT",
    "DATE_FORMAT",
    "FILE_FORMAT",
    "LOGGER_NAME",
    "ColoredFormatter",
    "TokenRedactingFilter",
    "cleanup_old_logs",
    "get_logger",
    "log_file_path",
    "resolve_log_level",
    "setup_logging",
]
