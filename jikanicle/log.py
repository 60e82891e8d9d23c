"""Logging setup for jikanicle.

Library modules only create module loggers; nothing is configured on
import. The CLI calls setup_logging() once at startup.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "jikanicle"


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: Union[str, int] = logging.WARNING, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the jikanicle logger.

    Args:
        level: Level for the console handler and the logger
        log_file: Optional path receiving JSON lines at DEBUG level

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    return logger
