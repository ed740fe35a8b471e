"""
Base exception classes for Test Relay.

Provides a hierarchy of exceptions for the failure points of a test run.
Each run error carries the status code reported back to the caller.
"""

from typing import Optional, Dict, Any


class RelayError(Exception):
    """Base exception class for all Test Relay errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "status_code": self.status_code,
            "context": self.context,
        }


class BadRequestError(RelayError):
    """Raised when the run request is missing or has malformed fields."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "BAD_REQUEST")
        self.field = field
        self.context.update({"field": field})


class LogServiceError(RelayError):
    """Raised when the remote log service rejects a stream operation."""

    def __init__(
        self,
        message: str,
        log_group: Optional[str] = None,
        log_stream: Optional[str] = None,
    ):
        super().__init__(message, "LOG_SERVICE_FAILED")
        self.log_group = log_group
        self.log_stream = log_stream
        self.context.update(
            {
                "log_group": log_group,
                "log_stream": log_stream,
            }
        )


class ProcessSpawnError(RelayError):
    """Raised when the test suite command cannot be started."""

    def __init__(self, message: str, command: Optional[list] = None):
        super().__init__(message, "PROCESS_SPAWN_FAILED")
        self.command = command or []
        self.context.update({"command": command})


class ReportMissingError(RelayError):
    """Raised when the suite finished without writing its result manifest."""

    def __init__(
        self,
        message: str,
        manifest_path: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, "REPORT_MISSING")
        self.manifest_path = manifest_path
        self.exit_code = exit_code
        self.context.update(
            {
                "manifest_path": manifest_path,
                "exit_code": exit_code,
            }
        )


class UploadError(RelayError):
    """Raised when an artifact could not be written to object storage."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message, "UPLOAD_FAILED")
        self.bucket = bucket
        self.key = key
        self.context.update(
            {
                "bucket": bucket,
                "key": key,
            }
        )


class RunTimeoutError(RelayError):
    """Raised when a run exceeds its deadline."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        output: str = "",
    ):
        super().__init__(message, "RUN_TIMEOUT")
        self.stage = stage
        self.output = output
        self.context.update({"stage": stage})


class ValidationError(RelayError):
    """Raised when configuration validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )
