"""
Logging setup shared by the library and the reaper agent.

Library modules call :func:`get_logger`; the first call configures the root
logger from ``TESTHARBOR_LOG_LEVEL``. Under pytest the capture handlers are
already installed, so only their level and format are adjusted.
"""

import logging
import os
import sys
from typing import ClassVar, Optional

_PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_COLOR_FORMAT = "\x1b[90m%(asctime)s\x1b[0m | %(levelname_color)s | \x1b[36m%(name)s\x1b[0m | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# docker-py logs every API round trip at DEBUG; readiness polls would drown in it
QUIET_LOGGERS = ("docker", "urllib3", "httpx", "httpcore")

_configured: str | int | None = None


def _supports_color() -> bool:
    if os.getenv("NO_COLOR") is not None:
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


class _LevelColorFormatter(logging.Formatter):
    """Adds ``levelname_color`` to records, ANSI-colored when enabled."""

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\x1b[37m",
        "INFO": "\x1b[32m",
        "WARNING": "\x1b[33m",
        "ERROR": "\x1b[31m",
        "CRITICAL": "\x1b[41m",
    }
    RESET: ClassVar[str] = "\x1b[0m"

    def __init__(self, fmt: str, datefmt: str, use_color: bool):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname) if self.use_color else None
        record.levelname_color = f"{color}{record.levelname}{self.RESET}" if color else record.levelname
        return super().format(record)


def configure_logging(
    level: Optional[str | int] = None,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
) -> str | int:
    """
    Set the root level and formatter; repeated calls with the same level are no-ops.

    ``TESTHARBOR_LOG_FORMAT`` and ``TESTHARBOR_LOG_DATEFMT`` replace the
    default format strings. Returns the effective level.
    """
    from testharbor.config.environment import Environment

    global _configured

    if level is None:
        level = Environment.get_log_level()
    if isinstance(level, str):
        level = level.upper()
    if level == _configured:
        return level
    _configured = level

    use_color = _supports_color()
    fmt = fmt or os.getenv("TESTHARBOR_LOG_FORMAT") or (_COLOR_FORMAT if use_color else _PLAIN_FORMAT)
    datefmt = datefmt or os.getenv("TESTHARBOR_LOG_DATEFMT") or _DATEFMT

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=fmt, datefmt=datefmt)
    root.setLevel(level)
    formatter = _LevelColorFormatter(fmt, datefmt, use_color)
    for handler in root.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setFormatter(formatter)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return level


def get_logger(name: str) -> logging.Logger:
    """Return a module logger at the configured level."""
    logger = logging.getLogger(name)
    logger.setLevel(configure_logging())
    return logger
