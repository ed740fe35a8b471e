"""Core components for Test Relay."""

from .config import Config
from .exceptions import (
    RelayError,
    BadRequestError,
    LogServiceError,
    ProcessSpawnError,
    ReportMissingError,
    UploadError,
    RunTimeoutError,
    ValidationError,
)
from .lifecycle import RunContext, RunState
from .logging_config import setup_logging, get_logger

__all__ = [
    "Config",
    "RelayError",
    "BadRequestError",
    "LogServiceError",
    "ProcessSpawnError",
    "ReportMissingError",
    "UploadError",
    "RunTimeoutError",
    "ValidationError",
    "RunContext",
    "RunState",
    "setup_logging",
    "get_logger",
]
