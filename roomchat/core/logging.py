# roomchat/core/logging.py

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers capped regardless of LOG_LEVEL
QUIET_LOGGERS = {
    "websockets": logging.WARNING,
    "websockets.client": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _resolve_level(level_name: str | None) -> int:
    name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(level_name: str | None = None) -> None:
    """
    Configure logging for the server and the client session.

    The level comes from ``level_name`` (usually ``Settings.LOG_LEVEL``) or
    the LOG_LEVEL env var. Records go to stdout. When uvicorn has already
    installed handlers only the level is updated.
    """
    level = _resolve_level(level_name)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root_logger.addHandler(handler)

    for name, cap in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(cap, level))


def get_logger(name: str | None = None) -> logging.Logger:
    """Shorthand for ``logging.getLogger``, used by modules that want the app config."""
    return logging.getLogger(name)
