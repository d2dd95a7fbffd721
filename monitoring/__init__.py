"""
Monitoring package for Flashgate.

Exports:
- Notifier protocol and the bundled sinks
- safe_notify (fire-and-forget delivery)
"""

from monitoring.notifier import (
    LEVEL_CRITICAL,
    LEVEL_INFO,
    LEVEL_WARNING,
    LoggingNotifier,
    Notifier,
    RecordingNotifier,
    safe_notify,
)

__all__ = [
    "LEVEL_CRITICAL",
    "LEVEL_INFO",
    "LEVEL_WARNING",
    "LoggingNotifier",
    "Notifier",
    "RecordingNotifier",
    "safe_notify",
]
