"""
monitoring/notifier.py - Notification sink.

Breaker trips, resets and daily rollovers are pushed to a sink. Delivery is
fire-and-forget: a failing sink is logged and never breaks the caller.
Chat delivery (Telegram etc.) plugs in by implementing Notifier.
"""

from typing import Any, Protocol

from core.logging import get_logger

logger = get_logger(__name__)

LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_CRITICAL = "critical"


class Notifier(Protocol):
    def notify(self, level: str, message: str, data: dict[str, Any] | None = None) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the structured log."""

    _LEVELS = {
        LEVEL_INFO: logger.info,
        LEVEL_WARNING: logger.warning,
        LEVEL_CRITICAL: logger.critical,
    }

    def notify(self, level: str, message: str, data: dict[str, Any] | None = None) -> None:
        log = self._LEVELS.get(level, logger.info)
        log(f"NOTIFY: {message}", extra={"context": {"level": level, **(data or {})}})


class RecordingNotifier:
    """Keeps notifications in memory. Used by tests and dry runs."""

    def __init__(self):
        self.messages: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, level: str, message: str, data: dict[str, Any] | None = None) -> None:
        self.messages.append((level, message, dict(data or {})))


def safe_notify(
    notifier: Notifier | None,
    level: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Deliver a notification; sink failures are logged and dropped."""
    if notifier is None:
        return
    try:
        notifier.notify(level, message, data)
    except Exception as e:
        logger.error(
            f"Notification delivery failed: {e}",
            extra={"context": {"message": message, "error_type": type(e).__name__}},
        )
