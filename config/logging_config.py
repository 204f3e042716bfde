"""Loguru setup.

The terminal belongs to the UI, so logs only ever go to a file. Records from
the standard `logging` module (asyncio, textual) are routed into loguru.
"""

import logging
from pathlib import Path
from typing import Union

from loguru import logger

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
)


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(log_file: Union[str, Path], level: str = "INFO") -> None:
    """Send all logging to `log_file`, replacing loguru's stderr sink."""
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        path,
        level=level,
        format=LOG_FORMAT,
        encoding="utf-8",
        rotation="5 MB",
        retention=3,
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
