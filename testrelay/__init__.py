"""
Test Relay - remote test-execution trigger

Runs an external test suite for a target URL, streams its console output
to a run-scoped log stream and publishes its result tree to object storage.
"""

__version__ = "0.1.0"

from .core.config import Config
from .core.exceptions import RelayError
from .core.logging_config import setup_logging

__all__ = [
    "Config",
    "RelayError",
    "setup_logging",
]
