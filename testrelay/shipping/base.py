"""
Log service capability used by the log sink.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from .models import LogEvent


class LogService(ABC):
    """Remote append-only log channel provider."""

    @abstractmethod
    async def create_stream(self, group: str, stream: str) -> None:
        """Create a named stream inside a log group."""

    @abstractmethod
    async def put_events(
        self, group: str, stream: str, events: Sequence[LogEvent]
    ) -> None:
        """Append an ordered batch of events to a stream."""
