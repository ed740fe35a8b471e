"""
Pytest configuration and shared fixtures for Test Relay tests.

Provides recording fakes for the log service and object store, a factory
for throwaway suite scripts and a configuration pointing at temporary
directories.
"""

import asyncio
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from testrelay.core.config import Config
from testrelay.shipping.base import LogService
from testrelay.shipping.models import LogEvent
from testrelay.storage.base import ObjectStore


VALID_TOKEN = "0f8fad5b-d9cb-469f-a165-70867728950e"


class RecordingLogService(LogService):
    """Log service fake that records every call."""

    def __init__(self, fail_create: bool = False, fail_messages: Sequence[str] = ()):
        self.fail_create = fail_create
        self.fail_messages = set(fail_messages)
        self.created: List[Tuple[str, str]] = []
        self.batches: List[Tuple[str, str, List[LogEvent]]] = []
        self.delay = 0.0

    async def create_stream(self, group: str, stream: str) -> None:
        if self.fail_create:
            raise RuntimeError("AccessDenied: logs:CreateLogStream")
        self.created.append((group, stream))

    async def put_events(self, group: str, stream: str, events) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(e.message in self.fail_messages for e in events):
            raise RuntimeError("ThrottlingException")
        self.batches.append((group, stream, list(events)))

    @property
    def messages(self) -> List[str]:
        return [e.message for _, _, events in self.batches for e in events]


class RecordingObjectStore(ObjectStore):
    """Object store fake keeping blobs in memory."""

    def __init__(self, delays: Optional[Dict[str, float]] = None, fail_keys: Sequence[str] = ()):
        self.delays = delays or {}
        self.fail_keys = set(fail_keys)
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.completion_order: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def put(self, bucket: str, key: str, body: bytes) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(key, 0))
            if key in self.fail_keys:
                raise RuntimeError(f"PutObject denied for {key}")
            self.objects[(bucket, key)] = body
            self.completion_order.append(key)
        finally:
            self.in_flight -= 1
        return f"https://{bucket}.example.test/{key}"


@pytest.fixture
def log_service():
    """Create a recording log service."""
    return RecordingLogService()


@pytest.fixture
def object_store():
    """Create a recording object store."""
    return RecordingObjectStore()


@pytest.fixture
def suite_script(tmp_path):
    """Factory writing a Python script that stands in for the test suite."""

    def _write(body: str, name: str = "suite.py") -> Path:
        script = tmp_path / name
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return script

    return _write


@pytest.fixture
def temp_config(tmp_path):
    """Create a configuration rooted in a temporary directory."""
    return Config(
        results_dir=tmp_path / "test-results",
        suite_command=[sys.executable, str(tmp_path / "suite.py")],
        storage_backend="local",
        local_storage_dir=tmp_path / "uploads",
        log_backend="local",
        bucket="test-bucket",
        log_group="/testrelay/tests",
    )


@pytest.fixture
def result_tree(tmp_path):
    """Create a result tree with a manifest and a nested HTML report."""
    root = tmp_path / "tree"
    (root / "html-report" / "data").mkdir(parents=True)
    (root / "index.json").write_text('{"stats": {"expected": 1}}', encoding="utf-8")
    (root / "html-report" / "index.html").write_text("<html></html>", encoding="utf-8")
    (root / "html-report" / "data" / "trace.zip").write_bytes(b"PK\x03\x04trace")
    return root


@pytest.fixture
def run_token():
    """A well-formed run token."""
    return VALID_TOKEN
