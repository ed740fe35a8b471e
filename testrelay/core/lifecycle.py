"""
Run lifecycle tracking for Test Relay.

Holds the state machine of a single run and the timing information used
for correlation in the operational log.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from .logging_config import get_logger


class RunState(Enum):
    """States a run moves through, in order."""

    VALIDATING = "validating"
    LOG_STREAM_CREATING = "log_stream_creating"
    EXECUTING = "executing"
    CHECKING_REPORT = "checking_report"
    UPLOADING = "uploading"
    DONE = "done"
    ERRORED = "errored"


_ORDER = [
    RunState.VALIDATING,
    RunState.LOG_STREAM_CREATING,
    RunState.EXECUTING,
    RunState.CHECKING_REPORT,
    RunState.UPLOADING,
    RunState.DONE,
]


@dataclass
class RunContext:
    """Context information for one run."""

    run_token: Optional[str] = None
    state: RunState = RunState.VALIDATING
    start_time: float = field(default_factory=time.time)
    history: List[RunState] = field(default_factory=lambda: [RunState.VALIDATING])
    error_kind: Optional[str] = None
    deadline: Optional[float] = None

    def __post_init__(self):
        self._logger = get_logger("testrelay.lifecycle")

    @property
    def duration(self) -> float:
        """Get current run duration in seconds."""
        return time.time() - self.start_time

    @property
    def start_timestamp(self) -> str:
        """Get formatted start timestamp."""
        return datetime.fromtimestamp(self.start_time).isoformat()

    @property
    def is_terminal(self) -> bool:
        return self.state in (RunState.DONE, RunState.ERRORED)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def advance(self, state: RunState) -> None:
        """
        Move to the next state.

        Raises:
            ValueError: If the transition skips or reverses a state
        """
        if self.is_terminal:
            raise ValueError(f"Run already finished in state {self.state.value}")
        if state is RunState.ERRORED or _ORDER.index(state) != _ORDER.index(self.state) + 1:
            raise ValueError(
                f"Invalid transition {self.state.value} -> {state.value}"
            )
        self._set(state)

    def fail(self, error_kind: str) -> None:
        """Move to the absorbing error state."""
        if self.is_terminal:
            raise ValueError(f"Run already finished in state {self.state.value}")
        self.error_kind = error_kind
        self._set(RunState.ERRORED)

    def _set(self, state: RunState) -> None:
        self._logger.debug(
            f"Run state: {self.state.value} -> {state.value}",
            extra={"run_token": self.run_token},
        )
        self.state = state
        self.history.append(state)

    def to_dict(self) -> Dict[str, Any]:
        """Convert run context to dictionary."""
        return {
            "run_token": self.run_token,
            "state": self.state.value,
            "start_time": self.start_timestamp,
            "duration": self.duration,
            "error_kind": self.error_kind,
            "history": [s.value for s in self.history],
        }
