"""
Logging for zsa.

zsa writes through loguru's global ``logger`` and adds no sinks on import, so
a host application keeps whatever loguru setup it already has. Applications
that want zsa's console and rotating-file layout call ``setup_logging()``
once at startup; unset arguments fall back to ``Settings``.

Example:
    from zsa import setup_logging

    setup_logging(level="DEBUG")
"""

import inspect
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from ..settings import get_settings

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Loggers of the HTTP stack the router runs on
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "fastapi", "httpx")


class InterceptHandler(logging.Handler):
    """Forward standard library records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    log_to_file: bool | None = None,
    log_file: str | Path | None = None,
    serialize: bool = False,
    intercept: Iterable[str] = INTERCEPTED_LOGGERS,
) -> list[int]:
    """Replace loguru's sinks with zsa's console sink and optional file sink.

    Args:
        level: Minimum level; ``settings.log_level`` by default.
        format: loguru format string; ``settings.log_format`` or DEFAULT_FORMAT.
        log_to_file: Also write to a rotating file; ``settings.log_to_file`` by default.
        log_file: File path; ``<settings.get_log_dir()>/zsa.log`` by default.
        serialize: Write the file sink as JSON lines.
        intercept: Standard library loggers to route through loguru.

    Returns:
        Ids of the added sinks, usable with ``logger.remove``.
    """
    settings = get_settings()
    level = level or settings.log_level
    format = format or settings.log_format or DEFAULT_FORMAT
    if log_to_file is None:
        log_to_file = settings.log_to_file

    logger.remove()
    sink_ids = [
        logger.add(
            sys.stderr, level=level, format=format, colorize=True, backtrace=True, diagnose=False
        )
    ]

    if log_to_file:
        log_path = Path(log_file) if log_file else settings.get_log_dir() / "zsa.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sink_ids.append(
            logger.add(
                str(log_path),
                level=level,
                format=format,
                rotation=settings.log_rotation,
                retention=settings.log_retention,
                compression="zip",
                serialize=serialize,
                backtrace=True,
                diagnose=False,
            )
        )

    for name in intercept:
        logging.getLogger(name).handlers = [InterceptHandler()]

    return sink_ids
