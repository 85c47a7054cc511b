"""Structured logging setup."""

import logging
import logging.handlers
import os
import sys
from typing import Mapping, Optional

import structlog

from core.config import LOG_LEVELS, LoggingConfig


LOG_LEVEL_ALIASES = {
    "warn": "warning",
    "verbose": "debug",
}

LOGFILE_MAX_BYTES = 10 * 1024 * 1024
LOGFILE_BACKUPS = 3


def resolve_log_level(
    env: Optional[Mapping[str, str]] = None,
    configured: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the effective log level name, or None for no logging.

    PUPPETCHEF_LOGLEVEL wins, then PUPPETCHEF_INFO=1, then PUPPETCHEF_DEBUG=1,
    then the configured level.
    """
    env = os.environ if env is None else env

    level = env.get("PUPPETCHEF_LOGLEVEL")
    if not level and env.get("PUPPETCHEF_INFO") == "1":
        level = "info"
    if not level and env.get("PUPPETCHEF_DEBUG") == "1":
        level = "debug"
    if not level:
        level = configured

    if not level:
        return None

    level = level.lower()
    level = LOG_LEVEL_ALIASES.get(level, level)
    return level if level in LOG_LEVELS else None


def configure_logging(
    config: Optional[LoggingConfig] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """
    Configure structlog on top of the standard library.

    Returns the effective level name (None when logging is silenced).
    """
    config = config or LoggingConfig()
    env = os.environ if env is None else env

    level = resolve_log_level(env, config.level)
    logfile = env.get("PUPPETCHEF_LOGFILE") or config.file
    json_format = env.get("LOG_FORMAT") == "json" or config.json_format

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if level is None:
        root.addHandler(logging.NullHandler())
        root.setLevel(logging.CRITICAL + 1)
    else:
        if logfile:
            handler: logging.Handler = logging.handlers.RotatingFileHandler(
                logfile,
                maxBytes=LOGFILE_MAX_BYTES,
                backupCount=LOGFILE_BACKUPS,
            )
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
        root.setLevel(getattr(logging, level.upper()))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    return level
