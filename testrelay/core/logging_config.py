"""
Logging configuration for Test Relay.

Provides the process-wide operational log: structured JSON output for
hosted environments, human-readable text for development, and optional
file rotation. Run-scoped console output goes to the remote LogStream,
not here.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from typing import Optional

from .config import Config


CONTEXT_FIELDS = ["run_token", "log_stream", "exit_code", "duration", "status_code"]


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, instance_id: Optional[str] = None):
        super().__init__()
        self.instance_id = instance_id

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if self.instance_id:
            log_entry["instance_id"] = self.instance_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "metadata"):
            log_entry["metadata"] = record.metadata

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")

        message = f"[{timestamp}] {record.levelname:8} {record.name:28} | {record.getMessage()}"

        run_token = getattr(record, "run_token", None)
        if run_token:
            message += f" (run: {str(run_token)[:8]})"

        if hasattr(record, "metadata") and record.metadata:
            metadata_str = " | ".join(f"{k}={v}" for k, v in record.metadata.items())
            message += f" | {metadata_str}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(config: Config, instance_id: Optional[str] = None) -> logging.Logger:
    """
    Set up logging configuration based on environment and config.

    Args:
        config: Configuration object with logging settings
        instance_id: Optional identifier of this relay process

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, config.log_level, logging.INFO)
    root_logger.setLevel(log_level)

    if config.log_format == "json":
        formatter = StructuredFormatter(instance_id)
    else:
        formatter = TextFormatter()

    # Console handler (always present)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(log_level, logging.INFO))

    logger = logging.getLogger("testrelay.logging")
    logger.info(
        "Logging configured",
        extra={
            "metadata": {
                "log_level": config.log_level,
                "log_format": config.log_format,
                "log_file": str(config.log_file) if config.log_file else None,
            }
        },
    )

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges fixed context into every record."""

    def process(self, msg, kwargs):
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        kwargs["extra"].update(self.extra)
        return msg, kwargs


def get_logger(name: str, **context):
    """
    Get a logger with optional context.

    Args:
        name: Logger name (typically module name)
        **context: Additional context to include in log records

    Returns:
        Configured logger with context
    """
    logger = logging.getLogger(name)

    if context:
        return ContextAdapter(logger, context)

    return logger


def log_performance(logger, operation: str, duration: float, **metadata):
    """
    Log performance metrics for operations.

    Args:
        logger: Logger instance
        operation: Name of the operation
        duration: Duration in seconds
        **metadata: Additional metadata to include
    """
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )
