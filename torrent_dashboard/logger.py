"""
Loguru sinks for the dashboard.

Importing this module adds the file sink (and a stderr sink when VERBOSE).
``intercept_stdlib_logging`` additionally routes uvicorn's standard-library
loggers into the same sinks; the server calls it before starting uvicorn.
"""

import logging
import sys

from loguru import logger

from .config import Config


VERBOSE = Config.VERBOSE
LOG_PATH = Config.LOG_PATH
LOG_LEVEL = Config.LOG_LEVEL
LOG_ROTATION = Config.LOG_ROTATION
LOG_RETENTION = Config.LOG_RETENTION

STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


# Log to a file
logger.add(
    LOG_PATH,
    rotation=LOG_ROTATION,
    retention=LOG_RETENTION,
    level=LOG_LEVEL,
)

# Log to console
if VERBOSE:
    logger.add(
        sink=sys.stderr,
        level=LOG_LEVEL,
    )


class InterceptHandler(logging.Handler):
    """Route standard logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_stdlib_logging(names=STDLIB_LOGGERS) -> None:
    handler = InterceptHandler()
    for name in names:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [handler]
        stdlib_logger.propagate = False
