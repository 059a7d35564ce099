"""
Logging setup for MnemoGraph.

Library modules only ever do ``from loguru import logger``; installing a
sink is left to the application. ``MnemoGraph(configure_logs=True)`` calls
``configure_logging`` with its ``observability`` config section.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

from loguru import logger

from .config import ObservabilityConfig

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Forwards stdlib records (e.g. from predictor model runtimes) to loguru."""

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


def configure_logging(config: Optional[ObservabilityConfig] = None, sink: Any = None) -> int:
    """
    Replace loguru's handlers with a single sink.

    ``config.json_logs`` switches to one JSON object per line (loguru
    ``serialize``). Returns the loguru handler id.
    """
    config = config or ObservabilityConfig()
    level = config.log_level.upper()

    logger.remove()
    handler_id = logger.add(
        sink if sink is not None else sys.stderr,
        level=level,
        format=LOG_FORMAT,
        serialize=config.json_logs,
        colorize=sink is None and not config.json_logs,
        enqueue=True,
    )
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    logger.debug(f"Logging configured: level={level}, json={config.json_logs}")
    return handler_id
