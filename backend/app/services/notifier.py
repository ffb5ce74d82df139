"""
Success/error notification hooks injected into the workflow controller.
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def on_success(self, message: str) -> None:
        ...

    @abstractmethod
    def on_error(self, message: str) -> None:
        ...


class LoggingNotifier(Notifier):
    """Default notifier for headless use: writes notifications to the log."""

    def on_success(self, message: str) -> None:
        logger.info(f"NOTIFY success: {message}")

    def on_error(self, message: str) -> None:
        logger.warning(f"NOTIFY error: {message}")
