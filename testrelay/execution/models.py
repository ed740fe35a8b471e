"""
Data models for run requests, process results and run outcomes.

Defines Pydantic models for the invocation boundary of Test Relay and for
the result of running the external test suite.
"""

import re
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import core_schema

from ..core.exceptions import BadRequestError, RelayError


DEFAULT_GREP = "@smoke"

# Shape check only: 36 characters of lowercase hex digits and hyphens.
RUN_TOKEN_PATTERN = re.compile(r"^[0-9a-f-]{36}$")

VALID_STATUS_CODES = (200, 400, 500)


class RunToken(str):
    """
    Externally supplied run identifier.

    Accepts any 36-character string made only of lowercase hex digits and
    hyphens. This is looser than a UUID check; callers have only ever
    been promised the shape.
    """

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return isinstance(value, str) and bool(RUN_TOKEN_PATTERN.match(value))

    @classmethod
    def parse(cls, value: Any) -> "RunToken":
        """
        Validate and wrap a raw token.

        Raises:
            BadRequestError: If the token is missing or malformed
        """
        if value is None or value == "":
            raise BadRequestError('"uuid" is missing', field="uuid")
        if not cls.is_valid(value):
            raise BadRequestError('"uuid" is malformed', field="uuid")
        return cls(value)

    @classmethod
    def _validate(cls, value: str) -> "RunToken":
        if not cls.is_valid(value):
            raise ValueError("run token must be 36 lowercase hex digits or hyphens")
        return cls(value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        return core_schema.no_info_after_validator_function(
            cls._validate, core_schema.str_schema()
        )


class RunRequest(BaseModel):
    """Validated invocation request for one run."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    url: str = Field(..., min_length=1, description="Target URL passed to the suite")
    grep: str = Field(DEFAULT_GREP, description="Filter selecting which tests run")
    token: RunToken = Field(..., alias="uuid", description="Run token")

    @classmethod
    def from_event(
        cls, event: Optional[Mapping[str, Any]], default_grep: str = DEFAULT_GREP
    ) -> "RunRequest":
        """
        Build a request from a raw invocation payload.

        Args:
            event: Mapping with ``url``, ``uuid`` and optional ``grep``
            default_grep: Filter used when ``grep`` is absent

        Returns:
            Validated request

        Raises:
            BadRequestError: If ``url`` is missing or ``uuid`` is missing/malformed
        """
        if not isinstance(event, Mapping):
            raise BadRequestError("Invalid payload: expected an object")

        url = event.get("url")
        if not url or not isinstance(url, str):
            raise BadRequestError('"url" is missing', field="url")

        token = RunToken.parse(event.get("uuid"))

        grep = event.get("grep")
        if grep is not None and not isinstance(grep, str):
            raise BadRequestError('"grep" must be a string', field="grep")

        return cls(url=url, grep=grep or default_grep, uuid=token)


class ProcessResult(BaseModel):
    """Result of running the external test suite to completion."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    exit_code: int = Field(..., description="Process exit code")
    output: str = Field(default="", description="Interleaved stdout and stderr")
    duration: float = Field(default=0.0, ge=0, description="Wall time in seconds")

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class RunOutcome(BaseModel):
    """Structured result returned to the caller of a run."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    status_code: int = Field(..., alias="statusCode")
    message: str = Field(...)
    result_uri: Optional[str] = Field(None, alias="resultUri")
    error: Optional[str] = Field(None, description="Error code on failures")

    @field_validator("status_code")
    @classmethod
    def validate_status_code(cls, v):
        if v not in VALID_STATUS_CODES:
            raise ValueError(f"status code must be one of {VALID_STATUS_CODES}")
        return v

    @classmethod
    def success(cls, exit_code: int, result_uri: Optional[str]) -> "RunOutcome":
        return cls(
            status_code=200,
            message=f"Tests executed with exit code {exit_code}",
            result_uri=result_uri,
        )

    @classmethod
    def from_error(cls, error: RelayError) -> "RunOutcome":
        return cls(
            status_code=error.status_code,
            message=error.message,
            error=error.error_code,
        )

    @classmethod
    def internal_error(cls, message: str) -> "RunOutcome":
        return cls(status_code=500, message=message, error="INTERNAL_ERROR")

    @property
    def is_success(self) -> bool:
        return self.status_code == 200

    def to_response(self) -> Dict[str, Any]:
        """Serialize to the invocation output shape."""
        return self.model_dump(by_alias=True, exclude_none=True)
