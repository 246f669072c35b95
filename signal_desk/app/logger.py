"""Logging configuration for console and rotating file logs."""

from __future__ import annotations

import logging
from pathlib import Path
import sys

from loguru import logger


class _StdlibToLoguru(logging.Handler):
    """Forwards records from stdlib loggers (web layer, uvicorn) to loguru sinks."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logger(log_dir: str | Path = "logs", level: str = "INFO", capture_stdlib: bool = True):
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, level=level, enqueue=True)
    logger.add(
        path / "signals.log",
        level=level,
        rotation="5 MB",
        retention=5,
        enqueue=True,
        encoding="utf-8",
    )
    if capture_stdlib:
        logging.basicConfig(handlers=[_StdlibToLoguru()], level=0, force=True)
    return logger
