"""
Data models for run-scoped log shipping.
"""

import time
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class LogEvent(BaseModel):
    """One message appended to a remote log stream."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: int = Field(..., ge=0, description="Epoch milliseconds")
    message: str = Field(..., description="Log line")

    @property
    def is_blank(self) -> bool:
        return not self.message.strip()

    @classmethod
    def now(cls, message: str) -> "LogEvent":
        return cls(timestamp=now_millis(), message=message)

    @classmethod
    def batch(cls, messages: Iterable[str]) -> List["LogEvent"]:
        """Stamp a group of messages with the same forwarding time."""
        timestamp = now_millis()
        return [cls(timestamp=timestamp, message=m) for m in messages]

    def to_cloudwatch(self) -> dict:
        return {"timestamp": self.timestamp, "message": self.message}
