# backend/pawsync/workers/base_worker.py
"""
Lifecycle shared by pawsync background workers.

start() flips ``running`` on before initialize(); stop() flips it off before
cleanup(), so a loop polling ``running`` exits on its next check.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..enums import LogEmoji, LoggerName
from ..services.logger import get_service_logger


class BaseWorker(ABC):
    """Named worker with start/stop hooks and name-prefixed logging."""

    def __init__(self, name: str, logger_name: LoggerName = LoggerName.PIPELINE_WORKER):
        self.name = name
        self.running = False
        self._logger = get_service_logger(logger_name)

    async def start(self) -> None:
        self._logger.info(f"Starting {self.name} worker", emoji=LogEmoji.STARTUP)
        self.running = True
        await self.initialize()

    async def stop(self) -> None:
        self._logger.info(f"Stopping {self.name} worker", emoji=LogEmoji.SHUTDOWN)
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Acquire whatever the worker needs before its first cycle."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources taken in initialize()."""

    def log_info(self, message: str) -> None:
        self._logger.info(f"[{self.name}] {message}")

    def log_error(self, message: str, error: Optional[Exception] = None) -> None:
        self._logger.error(f"[{self.name}] {message}", exception=error)

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "running": self.running,
            "worker_type": type(self).__name__,
        }
