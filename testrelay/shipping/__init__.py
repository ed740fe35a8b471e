"""Run-scoped log shipping for Test Relay."""

from .base import LogService
from .local import LocalLogService
from .models import LogEvent
from .sink import LogSink

__all__ = [
    "LogService",
    "LocalLogService",
    "LogEvent",
    "LogSink",
]
