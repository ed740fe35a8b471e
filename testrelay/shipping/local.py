"""
Log service that writes run streams into the operational log.

Used for development and for hosts without a remote log service.
"""

from typing import Dict, List, Sequence

from ..core.logging_config import get_logger
from .base import LogService
from .models import LogEvent


class LocalLogService(LogService):
    """Keeps streams in memory and echoes every event to a local logger."""

    def __init__(self, logger_name: str = "testrelay.runlog", keep_events: bool = False):
        self.logger = get_logger(logger_name)
        self.keep_events = keep_events
        self.streams: Dict[str, List[LogEvent]] = {}

    async def create_stream(self, group: str, stream: str) -> None:
        self.streams.setdefault(f"{group}/{stream}", [])
        self.logger.debug(f"Created log stream {group}/{stream}")

    async def put_events(
        self, group: str, stream: str, events: Sequence[LogEvent]
    ) -> None:
        key = f"{group}/{stream}"
        if key not in self.streams:
            raise KeyError(f"Log stream does not exist: {key}")
        for event in events:
            self.logger.info(event.message, extra={"log_stream": stream})
        if self.keep_events:
            self.streams[key].extend(events)
