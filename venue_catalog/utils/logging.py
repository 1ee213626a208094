"""
Logging setup for the venue catalog.

Console output goes to stderr; ``LOG_FILE`` adds a rotating, gz-compressed
file. Lines logged while a plan is being applied carry its run id, bound
with ``logger.contextualize(run_id=...)``; other lines show ``-``.
"""

import os
import sys
from pathlib import Path

from loguru import logger

from venue_catalog.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[run_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[run_id]} | {name}:{function}:{line} - {message}"


def setup_logging(level: str | None = None, log_file: Path | None = None) -> None:
    """
    Configure loguru handlers.

    Args:
        level: Log level (defaults to ``LOG_LEVEL``)
        log_file: File to log to as well (defaults to ``LOG_FILE``)
    """
    level = level or settings.pipeline.log_level
    log_file = log_file or settings.pipeline.log_file

    logger.remove()
    logger.configure(extra={"run_id": "-"})
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            level=level,
            format=FILE_FORMAT,
            rotation=settings.pipeline.log_rotation,
            retention=settings.pipeline.log_retention,
            compression="gz",
        )

    logger.debug(f"Logging configured: level={level}, file={log_file or 'none'}")


if os.environ.get("DISABLE_LOGGING") != "1":
    setup_logging()
