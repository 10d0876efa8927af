"""
Logger — Structured JSON logging for the beans service layer

Modules log through `logging.getLogger(__name__)` under the `beanpod`
namespace. Applications call `setup_logger()` once to attach a stdout
handler; JSON output by default, plain text for local development.

Environment:
- BEANS_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR | CRITICAL (default: INFO)
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

DEFAULT_LOGGER_NAME = "beanpod"


class BeansJsonFormatter(JsonFormatter):
    """JSON formatter adding timestamp, level, logger and call site fields."""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname

        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["thread_id"] = record.thread


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "json",
) -> logging.Logger:
    """
    Configure a logger with a single stdout handler.

    Args:
        name: Logger name (child loggers of `beanpod` inherit the handler)
        level: Log level name; falls back to BEANS_LOG_LEVEL, then INFO
        format_type: "json" or "text"

    Returns:
        The configured logger
    """
    level_name = (level or os.getenv("BEANS_LOG_LEVEL", "INFO")).upper()
    log_level = LOG_LEVELS.get(level_name, logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format_type == "json":
        formatter = BeansJsonFormatter(
            fmt="%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Get a logger, configuring it on first use."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logger(name)
    return logger
