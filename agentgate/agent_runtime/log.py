"""Logging configuration using loguru.

loguru is the only sink.  Stdlib records (uvicorn, the execution modules,
the engine SDK) are bridged in through ``_InterceptHandler``.

Every record carries ``extra["session"]``: the session manager wraps run
starts in ``logger.contextualize(session=...)`` and the run task inherits
that context, so all lines of one run, including the broker and engine
callbacks, are tagged with its session id.  Outside a run the tag is ``-``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[session]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[session]} | {name}:{function}:{line} - {message}"

# The engine SDK logs every control message at DEBUG.
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "claude_agent_sdk")


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real call-site.
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, json: bool = False, log_file: str | Path | None = None) -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup (before uvicorn starts).  *json*
    switches stderr to one serialized record per line; *log_file* adds a
    rotating plain-text file sink.
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"session": "-"})
    if json:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if log_file is not None:
        logger.add(log_file, level=level, format=FILE_FORMAT, rotation="10 MB", retention=5)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={}, json={}, file={})", level, json, log_file)
