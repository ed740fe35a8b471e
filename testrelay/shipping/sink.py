"""
Best-effort log sink for run-scoped log streams.

Appends never fail a run: delivery errors are written to the operational
log and dropped. Batches are delivered in the order they were appended by
a single background task per sink, which is tracked so it can be drained
or cancelled when the run ends.
"""

import asyncio
import contextlib
from typing import Iterable, List, Optional, Tuple

from ..core.exceptions import LogServiceError
from ..core.logging_config import get_logger
from .base import LogService
from .models import LogEvent


_STOP = object()

_QueueItem = Tuple[str, List[LogEvent], Optional[asyncio.Future]]


class LogSink:
    """
    Append-only client for named streams in one log group.

    ``append`` is fire-and-forget; ``append_and_wait`` returns only after
    its batch (and every batch queued before it) has been attempted.
    """

    def __init__(
        self,
        service: LogService,
        log_group: str,
        run_token: Optional[str] = None,
    ):
        self.service = service
        self.log_group = log_group
        if run_token:
            self.logger = get_logger(__name__, run_token=run_token)
        else:
            self.logger = get_logger(__name__)

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self._in_flight: Optional[asyncio.Future] = None

        self.delivered_batches = 0
        self.failed_batches = 0

    async def create_stream(self, name: str) -> None:
        """
        Create the named stream.

        Raises:
            LogServiceError: If the log service rejects the request
        """
        try:
            await self.service.create_stream(self.log_group, name)
        except Exception as e:
            self.logger.error(f"Failed to create log stream {self.log_group}/{name}: {e}")
            raise LogServiceError(
                f"Failed to create log stream: {e}",
                log_group=self.log_group,
                log_stream=name,
            ) from e

        self.logger.debug(f"Created log stream {self.log_group}/{name}")

    def append(self, name: str, events: Iterable[LogEvent]) -> None:
        """Queue a batch for delivery without waiting for it."""
        batch = self._prepare(events)
        if not batch:
            return
        self._enqueue((name, batch, None))

    def append_lines(self, name: str, lines: Iterable[str]) -> None:
        """Queue raw lines, timestamped now."""
        self.append(name, LogEvent.batch(lines))

    async def append_and_wait(self, name: str, events: Iterable[LogEvent]) -> bool:
        """
        Queue a batch and wait until it has been attempted.

        Returns:
            True if the batch was delivered, False if it was dropped
        """
        batch = self._prepare(events)
        if not batch:
            return True

        future = asyncio.get_running_loop().create_future()
        if not self._enqueue((name, batch, future)):
            return False
        return await future

    async def close(self) -> None:
        """Deliver everything already queued, then stop the worker."""
        self._closed = True
        if self._worker is None:
            return
        self._queue.put_nowait(_STOP)
        await self._worker
        self._worker = None

    async def cancel(self) -> None:
        """Stop the worker and drop undelivered batches."""
        self._closed = True
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.set_result(False)
        self._in_flight = None

        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _STOP:
                continue
            dropped += 1
            future = item[2]
            if future is not None and not future.done():
                future.set_result(False)
        if dropped:
            self.logger.warning(f"Dropped {dropped} undelivered log batches")

    @staticmethod
    def _prepare(events: Iterable[LogEvent]) -> List[LogEvent]:
        return [event for event in events if not event.is_blank]

    def _enqueue(self, item: _QueueItem) -> bool:
        if self._closed:
            self.logger.warning(
                f"Log sink closed; dropping {len(item[1])} events for {item[0]}"
            )
            future = item[2]
            if future is not None:
                future.set_result(False)
            return False

        if self._worker is None:
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(self._run())
        self._queue.put_nowait(item)
        return True

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            name, batch, future = item
            self._in_flight = future
            delivered = await self._deliver(name, batch)
            self._in_flight = None
            if future is not None and not future.done():
                future.set_result(delivered)

    async def _deliver(self, name: str, batch: List[LogEvent]) -> bool:
        try:
            await self.service.put_events(self.log_group, name, batch)
        except Exception as e:
            self.failed_batches += 1
            self.logger.warning(
                f"Failed to ship {len(batch)} log events to {self.log_group}/{name}: {e}",
                extra={"metadata": {"error_type": type(e).__name__}},
            )
            return False

        self.delivered_batches += 1
        return True
