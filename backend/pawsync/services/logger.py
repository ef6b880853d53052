# backend/pawsync/services/logger.py
"""
Centralized logging for pawsync.

All modules log through a ServiceLogger obtained from get_service_logger().
Messages go to loguru; the logger name and any structured context are bound
to the record so sinks can render or filter on them.

Architecture:
- configure_logging() installs the console sink and, optionally, a rotating
  file sink. Call it once at process start (API lifespan or worker CLI).
- get_service_logger() is safe to call at import time; records emitted before
  configure_logging() use loguru's default stderr sink.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

from ..enums import LogEmoji, LoggerName, LogLevel

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> - <level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[logger_name]} | "
    "{message} | {extra[context]}"
)

LOG_FILE_ROTATION = "10 MB"
LOG_FILE_RETENTION = "14 days"

_configured = False


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    serialize: bool = False,
) -> None:
    """
    Install loguru sinks for the process.

    Args:
        level: Minimum level for all sinks
        log_file: Optional path for a rotating, compressed file sink
        serialize: Write the file sink as JSON lines instead of plain text
    """
    global _configured

    logger.remove()
    logger.configure(extra={"logger_name": LoggerName.SYSTEM.value, "context": {}})

    logger.add(
        sys.stderr,
        level=level.value,
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            level=level.value,
            format=FILE_FORMAT,
            rotation=LOG_FILE_ROTATION,
            retention=LOG_FILE_RETENTION,
            compression="gz",
            serialize=serialize,
            enqueue=True,
        )

    _configured = True
    logger.bind(logger_name=LoggerName.SYSTEM.value, context={}).debug(
        f"Logging configured at level {level.value}"
    )


def is_logging_configured() -> bool:
    return _configured


class ServiceLogger:
    """
    Logger bound to one LoggerName.

    Emoji priority: emoji passed to the call, then the instance default,
    then nothing.
    """

    def __init__(self, logger_name: LoggerName, default_emoji: Optional[LogEmoji] = None):
        self.logger_name = logger_name
        self.default_emoji = default_emoji

    def _format(self, message: str, emoji: Optional[LogEmoji]) -> str:
        resolved = emoji if emoji is not None else self.default_emoji
        if resolved is None:
            return message
        return f"{resolved.value} {message}"

    def _bound(self, extra_context: Optional[Dict[str, Any]]):
        return logger.bind(
            logger_name=self.logger_name.value, context=extra_context or {}
        )

    def error(
        self,
        message: str,
        exception: Optional[BaseException] = None,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        """Log an error, attaching the traceback when an exception is given."""
        bound = self._bound(extra_context)
        text = self._format(message, emoji)
        if exception is not None:
            bound.opt(exception=exception).error(text)
        else:
            bound.error(text)

    def warning(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._bound(extra_context).warning(self._format(message, emoji))

    def info(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._bound(extra_context).info(self._format(message, emoji))

    def debug(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._bound(extra_context).debug(self._format(message, emoji))


def get_service_logger(
    logger_name: LoggerName, default_emoji: Optional[LogEmoji] = None
) -> ServiceLogger:
    """
    Factory for a pre-configured logger for a specific service.

    Example:
        logger = get_service_logger(LoggerName.IMAGE_STORE, LogEmoji.STORAGE)
        logger.info("Stored object", extra_context={"key": key})
    """
    return ServiceLogger(logger_name, default_emoji)
