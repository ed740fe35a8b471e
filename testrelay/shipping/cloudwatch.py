"""
CloudWatch Logs implementation of the log service capability.

boto3 is synchronous, so every call runs in a worker thread to keep the
event loop free for process output.
"""

import asyncio
from typing import Iterator, List, Optional, Sequence

import boto3

from ..core.logging_config import get_logger
from .base import LogService
from .models import LogEvent


# PutLogEvents limits: events per call, bytes per call and bytes per event.
# Each event counts its UTF-8 message size plus a fixed overhead.
MAX_BATCH_EVENTS = 10000
MAX_BATCH_BYTES = 1048576
MAX_EVENT_BYTES = 262144
EVENT_OVERHEAD_BYTES = 26

TRUNCATION_MARKER = " [truncated]"


def fit_message(message: str) -> str:
    """Cut a message down to the largest size a single event may carry."""
    limit = MAX_EVENT_BYTES - EVENT_OVERHEAD_BYTES
    encoded = message.encode("utf-8")
    if len(encoded) <= limit:
        return message
    keep = limit - len(TRUNCATION_MARKER.encode("utf-8"))
    return encoded[:keep].decode("utf-8", errors="ignore") + TRUNCATION_MARKER


def split_batches(events: Sequence[LogEvent]) -> Iterator[List[dict]]:
    """Group events into requests that respect the count and size limits."""
    batch: List[dict] = []
    size = 0
    for event in events:
        entry = event.to_cloudwatch()
        entry["message"] = fit_message(entry["message"])
        entry_size = len(entry["message"].encode("utf-8")) + EVENT_OVERHEAD_BYTES

        if batch and (
            len(batch) >= MAX_BATCH_EVENTS or size + entry_size > MAX_BATCH_BYTES
        ):
            yield batch
            batch, size = [], 0

        batch.append(entry)
        size += entry_size

    if batch:
        yield batch


class CloudWatchLogService(LogService):
    """Log service backed by the CloudWatch Logs API."""

    def __init__(self, client=None, region: Optional[str] = None):
        """
        Initialize the CloudWatch log service.

        Args:
            client: Optional pre-built boto3 ``logs`` client
            region: AWS region used when building a client
        """
        self.client = client or boto3.client("logs", region_name=region)
        self.logger = get_logger(__name__)

    async def create_stream(self, group: str, stream: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.create_log_stream,
                logGroupName=group,
                logStreamName=stream,
            )
        except self.client.exceptions.ResourceAlreadyExistsException:
            self.logger.debug(f"Log stream already exists: {group}/{stream}")

    async def put_events(
        self, group: str, stream: str, events: Sequence[LogEvent]
    ) -> None:
        for log_events in split_batches(events):
            response = await asyncio.to_thread(
                self.client.put_log_events,
                logGroupName=group,
                logStreamName=stream,
                logEvents=log_events,
            )
            rejected = response.get("rejectedLogEventsInfo")
            if rejected:
                self.logger.warning(
                    f"CloudWatch rejected part of a batch for {group}/{stream}",
                    extra={"metadata": rejected},
                )
