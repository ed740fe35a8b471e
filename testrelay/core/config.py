"""
Configuration management for Test Relay.

Handles environment variables, .env files, optional YAML configuration
files, defaults and validation for all Test Relay components.
"""

import os
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Dict, Any, List

import yaml
from dotenv import find_dotenv, load_dotenv


DEFAULT_SUITE_COMMAND = [
    "npx",
    "playwright",
    "test",
    "--config=playwright.service.config.js",
    "--reporter=list,json",
]

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARN", "WARNING", "ERROR"]
VALID_LOG_FORMATS = ["text", "json"]
VALID_STORAGE_BACKENDS = ["s3", "local"]
VALID_LOG_BACKENDS = ["cloudwatch", "local"]

_PATH_FIELDS = ("results_dir", "suite_cwd", "local_storage_dir", "log_file")


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Configuration class for Test Relay with environment variable support."""

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")
    log_file: Optional[Path] = field(default=None)

    # Test suite execution
    results_dir: Path = field(default_factory=lambda: Path("/tmp/test-results"))
    manifest_name: str = field(default="index.json")
    suite_command: List[str] = field(
        default_factory=lambda: list(DEFAULT_SUITE_COMMAND)
    )
    suite_cwd: Optional[Path] = field(default=None)
    default_grep: str = field(default="@smoke")
    mirror_output: bool = field(default=False)
    run_timeout: Optional[float] = field(default=None)

    # Object storage
    storage_backend: str = field(default="s3")
    bucket: Optional[str] = field(default=None)
    aws_region: Optional[str] = field(default=None)
    s3_endpoint_url: Optional[str] = field(default=None)
    key_prefix: str = field(default="")
    local_storage_dir: Path = field(default_factory=lambda: Path.cwd() / "uploads")
    upload_concurrency: int = field(default=8)

    # Run-scoped log streams
    log_backend: str = field(default="cloudwatch")
    log_group: str = field(default="/testrelay/runs")

    def __post_init__(self):
        """Normalize values that may arrive as strings from env or YAML."""
        self.log_level = str(self.log_level).upper()
        if self.log_level == "WARN":
            self.log_level = "WARNING"
        self.log_format = str(self.log_format).lower()
        self.storage_backend = str(self.storage_backend).lower()
        self.log_backend = str(self.log_backend).lower()

        for name in _PATH_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(value))

        if isinstance(self.suite_command, str):
            self.suite_command = shlex.split(self.suite_command)

        # Storage keys are always joined with "/"
        self.key_prefix = (self.key_prefix or "").strip("/")

    @property
    def manifest_path(self) -> Path:
        """Get the location where the suite writes its result manifest."""
        return self.results_dir / self.manifest_name

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "log_level": self.log_level,
            "log_format": self.log_format,
            "log_file": str(self.log_file) if self.log_file else None,
            "results_dir": str(self.results_dir),
            "manifest_name": self.manifest_name,
            "suite_command": list(self.suite_command),
            "suite_cwd": str(self.suite_cwd) if self.suite_cwd else None,
            "default_grep": self.default_grep,
            "mirror_output": self.mirror_output,
            "run_timeout": self.run_timeout,
            "storage_backend": self.storage_backend,
            "bucket": self.bucket,
            "aws_region": self.aws_region,
            "s3_endpoint_url": self.s3_endpoint_url,
            "key_prefix": self.key_prefix,
            "local_storage_dir": str(self.local_storage_dir),
            "upload_concurrency": self.upload_concurrency,
            "log_backend": self.log_backend,
            "log_group": self.log_group,
        }

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """
        Create configuration from environment variables.

        Values from a .env file are loaded first without overriding
        variables that are already set in the process environment.

        Args:
            env_file: Optional explicit .env path

        Returns:
            Configuration populated from the environment
        """
        load_dotenv(env_file or find_dotenv(usecwd=True), override=False)

        overrides: Dict[str, Any] = {}

        def take(key: str, env_name: str) -> None:
            value = os.getenv(env_name)
            if value:
                overrides[key] = value

        take("log_level", "TESTRELAY_LOG_LEVEL")
        take("log_format", "TESTRELAY_LOG_FORMAT")
        take("log_file", "TESTRELAY_LOG_FILE")
        take("results_dir", "TESTRELAY_RESULTS_DIR")
        take("suite_command", "TESTRELAY_SUITE_COMMAND")
        take("suite_cwd", "TESTRELAY_SUITE_CWD")
        take("default_grep", "TESTRELAY_DEFAULT_GREP")
        take("storage_backend", "TESTRELAY_STORAGE_BACKEND")
        take("aws_region", "AWS_REGION")
        take("s3_endpoint_url", "TESTRELAY_S3_ENDPOINT_URL")
        take("key_prefix", "TESTRELAY_KEY_PREFIX")
        take("local_storage_dir", "TESTRELAY_LOCAL_STORAGE_DIR")
        take("log_backend", "TESTRELAY_LOG_BACKEND")
        take("log_group", "TESTRELAY_LOG_GROUP")

        bucket = os.getenv("TESTRELAY_S3_BUCKET") or os.getenv("AWS_S3_BUCKET")
        if bucket:
            overrides["bucket"] = bucket

        mirror = _env_flag("TESTRELAY_MIRROR_OUTPUT")
        if mirror is not None:
            overrides["mirror_output"] = mirror

        concurrency = os.getenv("TESTRELAY_UPLOAD_CONCURRENCY")
        if concurrency:
            try:
                overrides["upload_concurrency"] = int(concurrency)
            except ValueError:
                # Malformed values keep the default
                pass

        timeout = os.getenv("TESTRELAY_RUN_TIMEOUT")
        if timeout:
            try:
                overrides["run_timeout"] = float(timeout)
            except ValueError:
                pass

        return cls(**overrides)

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """
        Create configuration from a YAML file.

        Args:
            path: Path to a YAML mapping of configuration fields

        Returns:
            Configuration populated from the file
        """
        from .exceptions import ValidationError

        path = Path(path)
        if not path.exists():
            raise ValidationError(
                f"Configuration file not found: {path}",
                validation_type="config_file",
            )

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(
                f"Invalid YAML in configuration file {path}: {e}",
                validation_type="config_file",
            )

        if not isinstance(data, dict):
            raise ValidationError(
                f"Configuration file must contain a mapping: {path}",
                validation_type="config_file",
            )

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(
                f"Unknown configuration keys in {path}: {', '.join(unknown)}",
                validation_type="config_file",
                violations=unknown,
            )

        return cls(**data)

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"Invalid log format: {self.log_format}. Must be one of {VALID_LOG_FORMATS}"
            )

        if self.storage_backend not in VALID_STORAGE_BACKENDS:
            errors.append(
                f"Invalid storage backend: {self.storage_backend}. "
                f"Must be one of {VALID_STORAGE_BACKENDS}"
            )

        if self.log_backend not in VALID_LOG_BACKENDS:
            errors.append(
                f"Invalid log backend: {self.log_backend}. "
                f"Must be one of {VALID_LOG_BACKENDS}"
            )

        if self.storage_backend == "s3" and not self.bucket:
            errors.append("S3 bucket is required for the s3 storage backend")

        if not self.suite_command:
            errors.append("Suite command cannot be empty")

        if not self.manifest_name or "/" in self.manifest_name:
            errors.append(f"Invalid manifest name: {self.manifest_name!r}")

        if self.upload_concurrency < 1:
            errors.append(
                f"Upload concurrency must be at least 1, got {self.upload_concurrency}"
            )

        if self.run_timeout is not None and self.run_timeout <= 0:
            errors.append(f"Run timeout must be positive, got {self.run_timeout}")

        if not self.log_group:
            errors.append("Log group cannot be empty")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
