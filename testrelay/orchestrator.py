"""
Run orchestration for Test Relay.

Drives one run end to end: validate the request, open the run's log
stream, execute the test suite while streaming its output, check for the
result manifest, upload the result tree and assemble the outcome.
"""

import asyncio
import os
import time
import traceback
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .core.config import Config
from .core.exceptions import BadRequestError, RelayError, ReportMissingError
from .core.lifecycle import RunContext, RunState
from .core.logging_config import get_logger
from .execution.models import ProcessResult, RunOutcome, RunRequest
from .execution.runner import ProcessRunner
from .shipping.base import LogService
from .shipping.models import LogEvent
from .shipping.sink import LogSink
from .storage.base import ObjectStore
from .storage.uploader import ArtifactUploader


# Seconds allowed past the deadline for the END marker and the log drain
LOG_FLUSH_GRACE = 1.0


class RunOrchestrator:
    """
    Executes runs against injected log and storage services.

    The orchestrator holds no per-run state; every run gets its own
    LogSink, ProcessRunner and RunContext.
    """

    def __init__(
        self,
        config: Config,
        log_service: LogService,
        object_store: ObjectStore,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Test Relay configuration
            log_service: Remote log service for run streams
            object_store: Object storage for result artifacts
        """
        self.config = config
        self.log_service = log_service
        self.object_store = object_store
        self.uploader = ArtifactUploader(
            object_store,
            concurrency=config.upload_concurrency,
            key_prefix=config.key_prefix,
            manifest_name=config.manifest_name,
        )
        self.logger = get_logger("testrelay.orchestrator")

    @classmethod
    def from_config(cls, config: Config) -> "RunOrchestrator":
        """Build an orchestrator with the backends selected in the config."""
        if config.log_backend == "local":
            from .shipping.local import LocalLogService

            log_service = LocalLogService()
        else:
            from .shipping.cloudwatch import CloudWatchLogService

            log_service = CloudWatchLogService(region=config.aws_region)

        if config.storage_backend == "local":
            from .storage.local import LocalObjectStore

            object_store = LocalObjectStore(config.local_storage_dir)
        else:
            from .storage.s3 import S3ObjectStore

            object_store = S3ObjectStore(
                region=config.aws_region, endpoint_url=config.s3_endpoint_url
            )

        return cls(config, log_service, object_store)

    @property
    def bucket(self) -> str:
        return self.config.bucket or "local"

    async def run(
        self,
        event: Optional[Mapping[str, Any]],
        deadline: Optional[float] = None,
    ) -> RunOutcome:
        """
        Execute one run.

        Args:
            event: Raw request with ``url``, ``uuid`` and optional ``grep``
            deadline: Optional time budget in seconds for the whole run;
                falls back to the configured run timeout

        Returns:
            Outcome of the run; errors are reported, never raised
        """
        budget = deadline if deadline is not None else self.config.run_timeout
        context = RunContext(
            deadline=time.monotonic() + budget if budget is not None else None
        )

        try:
            request = RunRequest.from_event(event, default_grep=self.config.default_grep)
        except BadRequestError as e:
            context.fail("BadRequest")
            self.logger.warning(
                f"Rejected run request: {e.message}",
                extra={"metadata": e.to_dict()},
            )
            return RunOutcome.from_error(e)

        context.run_token = request.token
        logger = get_logger("testrelay.orchestrator", run_token=request.token)
        logger.info(
            f"Test run started for {request.url}",
            extra={"metadata": {"grep": request.grep, "budget": budget}},
        )

        sink = LogSink(self.log_service, self.config.log_group, run_token=request.token)

        context.advance(RunState.LOG_STREAM_CREATING)
        try:
            await sink.create_stream(request.token)
        except RelayError as e:
            context.fail("Internal")
            logger.error(f"Run aborted before execution: {e.message}")
            return RunOutcome.from_error(e)

        try:
            start = LogEvent.now(
                f"START RunId: {request.token} Url: {request.url} Grep: {request.grep}"
            )
            try:
                await asyncio.wait_for(
                    sink.append_and_wait(request.token, [start]), context.remaining()
                )
            except asyncio.TimeoutError:
                logger.warning("START marker not delivered before the deadline")
            outcome = await self._execute(request, context, sink)
        except BaseException:
            # Cancelled from outside; the log worker must not outlive the run
            if not context.is_terminal:
                context.fail("Cancelled")
            await sink.cancel()
            raise

        await self._finish_log(request, outcome, context, sink)

        logger.info(
            f"Test run finished with status {outcome.status_code}",
            extra={
                "status_code": outcome.status_code,
                "duration": context.duration,
                "metadata": {"states": [s.value for s in context.history]},
            },
        )
        return outcome

    async def _finish_log(
        self,
        request: RunRequest,
        outcome: RunOutcome,
        context: RunContext,
        sink: LogSink,
    ) -> None:
        """Write the END marker and drain the sink within the deadline."""
        end = LogEvent.now(f"END RunId: {request.token} Status: {outcome.status_code}")

        async def flush() -> None:
            await sink.append_and_wait(request.token, [end])
            await sink.close()

        remaining = context.remaining()
        budget = remaining + LOG_FLUSH_GRACE if remaining is not None else None
        try:
            await asyncio.wait_for(flush(), budget)
        except asyncio.TimeoutError:
            get_logger("testrelay.orchestrator", run_token=request.token).warning(
                f"Log delivery still pending after {budget:.1f}s; dropping the rest",
                extra={"metadata": {"failed_batches": sink.failed_batches}},
            )
            await sink.cancel()

    async def _execute(
        self, request: RunRequest, context: RunContext, sink: LogSink
    ) -> RunOutcome:
        logger = get_logger("testrelay.orchestrator", run_token=request.token)

        try:
            context.advance(RunState.EXECUTING)
            result = await self._run_suite(request, context, sink)

            context.advance(RunState.CHECKING_REPORT)
            self._check_report(result)

            context.advance(RunState.UPLOADING)
            result_uri = await self.uploader.upload(
                self.config.results_dir,
                self.bucket,
                request.token,
                timeout=context.remaining(),
            )

            context.advance(RunState.DONE)
            return RunOutcome.success(result.exit_code, result_uri)

        except RelayError as e:
            context.fail(type(e).__name__)
            logger.error(
                f"Run failed while {context.history[-2].value}: {e.error_code}",
                extra={"metadata": e.to_dict()},
            )
            return RunOutcome.from_error(e)

        except Exception as e:
            context.fail("Internal")
            logger.error(
                f"Unexpected error during run: {e}",
                extra={
                    "metadata": {
                        "error_type": e.__class__.__name__,
                        "traceback": traceback.format_exc(),
                    }
                },
            )
            return RunOutcome.internal_error(f"An error occurred during testing: {e}")

    async def _run_suite(
        self, request: RunRequest, context: RunContext, sink: LogSink
    ) -> ProcessResult:
        command, *base_args = self.config.suite_command
        args = [*base_args, f"--grep={request.grep}"]

        runner = ProcessRunner(
            mirror_output=self.config.mirror_output, run_token=request.token
        )
        return await runner.run(
            command,
            args,
            on_lines=lambda lines: sink.append_lines(request.token, lines),
            env=self._suite_env(request),
            cwd=self.config.suite_cwd,
            timeout=context.remaining(),
        )

    def _suite_env(self, request: RunRequest) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "BASE_URL": request.url,
                "TEST_RESULTS_DIR": str(self.config.results_dir),
                "PLAYWRIGHT_JSON_OUTPUT_NAME": str(self.config.manifest_path),
                "TESTRELAY_RUN_TOKEN": str(request.token),
            }
        )
        return env

    def _check_report(self, result: ProcessResult) -> None:
        results_dir: Path = self.config.results_dir
        manifest = self.config.manifest_path
        if results_dir.is_dir() and manifest.is_file():
            return

        raise ReportMissingError(
            result.output or f"Test process exited with code {result.exit_code} without output",
            manifest_path=str(manifest),
            exit_code=result.exit_code,
        )
