"""
Notifier — Narrow user-notification capability

The service layer never talks to a UI directly. Advisories (degraded mode,
quarantined files, orphaned children) go through a Notifier so the core
logic stays testable and usable from any front end.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence


logger = logging.getLogger(__name__)

OPEN_FILE_ACTION = "Open File"


class Notifier(ABC):
    """Abstract base for user notification surfaces."""

    @abstractmethod
    def warn(self, message: str, actions: Sequence[str] = ()) -> Optional[str]:
        """
        Show a non-blocking warning.

        Args:
            message: Text shown to the user
            actions: Optional action labels offered alongside the message

        Returns:
            The selected action label, or None
        """
        pass

    @abstractmethod
    def open_file(self, path: Path) -> None:
        """Open a file for the user to inspect."""
        pass


class LoggingNotifier(Notifier):
    """Default notifier: writes advisories to the log, never selects actions."""

    def warn(self, message: str, actions: Sequence[str] = ()) -> Optional[str]:
        logger.warning(message)
        return None

    def open_file(self, path: Path) -> None:
        logger.info("Open file requested: %s", path)
