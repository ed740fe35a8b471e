"""
Test execution components for Test Relay.

This module provides the child-process runner and the incremental line
extraction used to relay the suite's console output.
"""

from .line_buffer import LineBuffer
from .runner import ProcessRunner
from .models import (
    ProcessResult,
    RunOutcome,
    RunRequest,
    RunToken,
)

__all__ = [
    "LineBuffer",
    "ProcessRunner",
    "ProcessResult",
    "RunOutcome",
    "RunRequest",
    "RunToken",
]
