"""
Loguru setup for the API and the watcher.

Modules log with `from loguru import logger` and pass context as keyword
arguments, e.g. `logger.info("Invoice added", id=invoice.id)`. Keyword
arguments land in `record["extra"]` and are printed after the message.
"""

import logging
import sys

from loguru import logger

from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level> {extra}"
)


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records (uvicorn, httpx) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str | None = None, serialize: bool | None = None):
    level = (level or settings.log_level).upper()
    serialize = settings.log_json if serialize is None else serialize

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT,
        serialize=serialize,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False

    logger.debug("Logging configured", level=level, serialize=serialize)
    return logger
