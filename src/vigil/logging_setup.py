"""Idempotent stderr logging setup shared by the collector, CLI and uvicorn."""

from __future__ import annotations

import logging
import sys

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# uvicorn loggers routed through the same handler when serving.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(level: int = logging.INFO, *, server: bool = False) -> None:
    """Configure the ``vigil`` logger tree. Safe to call multiple times.

    With ``server=True`` the uvicorn loggers share the handler so request
    lines and pipeline lines interleave in one stream.
    """
    global _CONFIGURED  # noqa: PLW0603
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    names = ("vigil",) + (SERVER_LOGGERS if server else ())
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.propagate = False

    _CONFIGURED = True
