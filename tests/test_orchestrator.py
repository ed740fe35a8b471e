"""
Integration tests for the run orchestrator.

The test suite is replaced by small Python scripts started through the
current interpreter; the log service and object store are recording fakes.
"""

import asyncio
import json
import time

import pytest

from testrelay.orchestrator import LOG_FLUSH_GRACE, RunOrchestrator
from testrelay.shipping.local import LocalLogService
from testrelay.storage.local import LocalObjectStore


WRITES_MANIFEST = """
import json, os, sys
results = os.environ["TEST_RESULTS_DIR"]
os.makedirs(os.path.join(results, "html-report"), exist_ok=True)
with open(os.environ["PLAYWRIGHT_JSON_OUTPUT_NAME"], "w") as f:
    json.dump({"argv": sys.argv[1:], "base_url": os.environ["BASE_URL"]}, f)
with open(os.path.join(results, "html-report", "index.html"), "w") as f:
    f.write("<html></html>")
print("Running 3 tests using 1 worker")
print("  1 failed", file=sys.stderr)
sys.exit(EXIT_CODE)
"""


def manifest_script(exit_code=0):
    return WRITES_MANIFEST.replace("EXIT_CODE", str(exit_code))


@pytest.fixture
def orchestrator(temp_config, log_service, object_store):
    """Create an orchestrator wired to recording fakes."""
    return RunOrchestrator(temp_config, log_service, object_store)


@pytest.fixture
def event(run_token):
    return {"url": "https://staging.example.test", "uuid": run_token}


class TestRunOrchestrator:
    """Test cases for RunOrchestrator."""

    async def test_failed_tests_still_succeed(
        self, orchestrator, suite_script, event, object_store, log_service, run_token
    ):
        """Test a suite exiting non-zero with a manifest is a 200 outcome."""
        suite_script(manifest_script(exit_code=2))

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 200
        assert outcome.message == "Tests executed with exit code 2"
        assert outcome.result_uri == f"https://test-bucket.example.test/{run_token}/index.json"
        assert (
            "test-bucket",
            f"{run_token}/html-report/index.html",
        ) in object_store.objects
        assert outcome.to_response() == {
            "statusCode": 200,
            "message": "Tests executed with exit code 2",
            "resultUri": outcome.result_uri,
        }

    async def test_suite_receives_url_and_filter(
        self, orchestrator, suite_script, event, object_store, run_token
    ):
        """Test the suite sees the target URL and the filter argument."""
        suite_script(manifest_script())

        await orchestrator.run(dict(event, grep="@regression"))

        manifest = json.loads(object_store.objects[("test-bucket", f"{run_token}/index.json")])
        assert manifest["base_url"] == "https://staging.example.test"
        assert manifest["argv"] == ["--grep=@regression"]

    async def test_default_filter(
        self, orchestrator, suite_script, event, object_store, run_token
    ):
        """Test the default tag is used when no filter is given."""
        suite_script(manifest_script())

        await orchestrator.run(event)

        manifest = json.loads(object_store.objects[("test-bucket", f"{run_token}/index.json")])
        assert manifest["argv"] == ["--grep=@smoke"]

    async def test_output_streamed_between_markers(
        self, orchestrator, suite_script, event, log_service, run_token
    ):
        """Test the run stream is bracketed by START and END markers."""
        suite_script(manifest_script(exit_code=1))

        await orchestrator.run(event)

        assert log_service.created == [("/testrelay/tests", run_token)]
        messages = log_service.messages
        assert messages[0] == (
            f"START RunId: {run_token} Url: https://staging.example.test Grep: @smoke"
        )
        assert messages[-1] == f"END RunId: {run_token} Status: 200"
        assert "Running 3 tests using 1 worker" in messages[1:-1]
        assert "  1 failed" in messages[1:-1]

    @pytest.mark.parametrize(
        "payload",
        [
            {"url": "https://example.test", "uuid": "not-a-uuid"},
            {"url": "https://example.test"},
            {"uuid": "0f8fad5b-d9cb-469f-a165-70867728950e"},
            None,
        ],
    )
    async def test_bad_request(self, orchestrator, suite_script, log_service, tmp_path, payload):
        """Test invalid requests are rejected before any side effect."""
        suite_script(
            """
            open(__file__ + ".ran", "w").close()
            """
        )

        outcome = await orchestrator.run(payload)

        assert outcome.status_code == 400
        assert outcome.error == "BAD_REQUEST"
        assert log_service.created == []
        assert log_service.batches == []
        assert not (tmp_path / "suite.py.ran").exists()

    async def test_malformed_token_message(self, orchestrator):
        """Test the rejection names the malformed field."""
        outcome = await orchestrator.run({"url": "https://example.test", "uuid": "not-a-uuid"})

        assert outcome.message == '"uuid" is malformed'

    async def test_missing_manifest(self, orchestrator, suite_script, event, object_store):
        """Test a suite that writes no manifest fails with its output."""
        suite_script(
            """
            print("Error: No tests found")
            """
        )

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 500
        assert outcome.error == "REPORT_MISSING"
        assert "Error: No tests found" in outcome.message
        assert object_store.objects == {}

    async def test_stream_creation_failure(
        self, orchestrator, suite_script, event, log_service, tmp_path
    ):
        """Test the suite never runs when the log stream cannot be created."""
        log_service.fail_create = True
        suite_script('open(__file__ + ".ran", "w").close()\n')

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 500
        assert outcome.error == "LOG_SERVICE_FAILED"
        assert not (tmp_path / "suite.py.ran").exists()
        assert log_service.batches == []

    async def test_spawn_failure(self, temp_config, log_service, object_store, event, tmp_path, run_token):
        """Test an unstartable suite command is a 500 outcome."""
        temp_config.suite_command = [str(tmp_path / "missing-binary")]
        orchestrator = RunOrchestrator(temp_config, log_service, object_store)

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 500
        assert outcome.error == "PROCESS_SPAWN_FAILED"
        assert "Failed to start test process" in outcome.message
        assert log_service.messages[-1] == f"END RunId: {run_token} Status: 500"

    async def test_upload_failure(
        self, orchestrator, suite_script, event, object_store, run_token
    ):
        """Test a failed transfer fails the run."""
        suite_script(manifest_script())
        object_store.fail_keys.add(f"{run_token}/html-report/index.html")

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 500
        assert outcome.error == "UPLOAD_FAILED"
        assert outcome.result_uri is None

    async def test_log_failures_do_not_fail_run(
        self, orchestrator, suite_script, event, log_service, run_token
    ):
        """Test undeliverable log batches never change the outcome."""
        suite_script(manifest_script())
        log_service.fail_messages = {
            f"END RunId: {run_token} Status: 200",
            "Running 3 tests using 1 worker",
        }

        outcome = await orchestrator.run(event)

        assert outcome.status_code == 200
        assert "Running 3 tests using 1 worker" not in log_service.messages

    async def test_timeout(self, orchestrator, suite_script, event, log_service, run_token):
        """Test a suite outliving the deadline is killed and reported."""
        suite_script(
            """
            import time
            print("waiting", flush=True)
            time.sleep(30)
            """
        )

        outcome = await orchestrator.run(event, deadline=1.5)

        assert outcome.status_code == 500
        assert outcome.error == "RUN_TIMEOUT"
        assert log_service.messages[-1] == f"END RunId: {run_token} Status: 500"

    async def test_slow_log_service_bounded_by_deadline(
        self, orchestrator, suite_script, event, log_service
    ):
        """Test log delivery is cut off once the deadline and grace are spent."""
        suite_script(
            """
            import os, sys, time
            os.makedirs(os.environ["TEST_RESULTS_DIR"], exist_ok=True)
            with open(os.environ["PLAYWRIGHT_JSON_OUTPUT_NAME"], "w") as f:
                f.write("{}")
            for i in range(20):
                print(f"step {i}", flush=True)
                time.sleep(0.02)
            """
        )
        log_service.delay = 0.3
        deadline = 2.0

        started = time.monotonic()
        outcome = await orchestrator.run(event, deadline=deadline)
        elapsed = time.monotonic() - started

        assert outcome.status_code == 200
        assert elapsed < deadline + LOG_FLUSH_GRACE + 1.0
        assert len(log_service.batches) < 20

    async def test_cancelled_run_stops_sink(self, orchestrator, suite_script, event):
        """Test cancelling a run propagates after stopping the suite."""
        suite_script(
            """
            import time
            time.sleep(30)
            """
        )

        task = asyncio.ensure_future(orchestrator.run(event))
        await asyncio.sleep(0.5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_runs_are_independent(
        self, temp_config, suite_script, tmp_path
    ):
        """Test two runs through one orchestrator each get their own stream."""
        suite_script(manifest_script())
        log_service = LocalLogService(keep_events=True)
        orchestrator = RunOrchestrator(
            temp_config, log_service, LocalObjectStore(tmp_path / "uploads")
        )
        tokens = [
            "11111111-1111-1111-1111-111111111111",
            "22222222-2222-2222-2222-222222222222",
        ]

        for token in tokens:
            outcome = await orchestrator.run({"url": "https://example.test", "uuid": token})
            assert outcome.status_code == 200
            assert token in outcome.result_uri

        for token in tokens:
            events = log_service.streams[f"/testrelay/tests/{token}"]
            assert events[0].message.startswith(f"START RunId: {token}")
            assert events[-1].message == f"END RunId: {token} Status: 200"


class TestFromConfig:
    """Test cases for backend selection."""

    def test_local_backends(self, temp_config):
        """Test local backends are built from the configuration."""
        orchestrator = RunOrchestrator.from_config(temp_config)

        assert isinstance(orchestrator.log_service, LocalLogService)
        assert isinstance(orchestrator.object_store, LocalObjectStore)
        assert orchestrator.bucket == "test-bucket"
        assert orchestrator.uploader.concurrency == temp_config.upload_concurrency
