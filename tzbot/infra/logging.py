"""Standardized logging utilities for the timezone bot."""
from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

# Root logger name for all bot components
ROOT_LOGGER_NAME = "tzbot"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_FILE_NAME = "bot.log"
# command usage lines double as the evictor's usage log
COMMAND_LOGGER_NAME = "commands"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a hierarchical logger under the tzbot namespace.

    Args:
        name: Module or component name. If None, returns the root logger.
              The name will be prefixed with "tzbot." automatically
              if it doesn't already have that prefix.

    Example::

        from tzbot.infra.logging import get_logger
        log = get_logger("role_sync")  # -> "tzbot.role_sync"
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)

    clean_name = name
    if clean_name.startswith(f"{ROOT_LOGGER_NAME}."):
        clean_name = clean_name[len(ROOT_LOGGER_NAME) + 1 :]

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{clean_name}")


def structured_log(
    logger: logging.Logger,
    level: int,
    message: str,
    **fields: Any,
) -> None:
    """Log a message with structured key=value fields appended.

    Example::

        structured_log(log, logging.INFO, "Role sync pass done",
                       guilds=12, users_removed=False)
        # Logs: "Role sync pass done guilds=12 users_removed=False"
    """
    if fields:
        field_str = " ".join(f"{k}={v}" for k, v in fields.items())
        message = f"{message} {field_str}"
    logger.log(level, message)


def configure_logging(level_name: str, log_dir: Path | None) -> TimedRotatingFileHandler | None:
    """Attach console and (optionally) rotating file handlers to the root logger.

    The rotating files double as the usage log read by the guild evictor,
    so they are kept for 90 days.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)
    # usage lines must reach the file even under LOG_LEVEL=WARNING
    get_logger(COMMAND_LOGGER_NAME).setLevel(min(level, logging.INFO))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    # Limit console output to INFO and above even when file logging is DEBUG
    console_handler.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        log_dir / LOG_FILE_NAME, when="midnight", backupCount=90
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    return file_handler
