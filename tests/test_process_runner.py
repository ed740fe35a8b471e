"""
Unit tests for the process runner.

Runs real child processes through the current interpreter to check line
forwarding, output capture, exit codes, spawn failures and timeouts.
"""

import io
import os
import sys

import pytest

from testrelay.core.exceptions import ProcessSpawnError, RunTimeoutError
from testrelay.execution.models import ProcessResult
from testrelay.execution.runner import ProcessRunner


@pytest.fixture
def runner():
    """Create a process runner with a tiny chunk size to force splits."""
    return ProcessRunner(chunk_size=3)


class Collector:
    """Line sink recording each forwarded batch."""

    def __init__(self):
        self.batches = []

    def __call__(self, lines):
        self.batches.append(list(lines))

    @property
    def lines(self):
        return [line for batch in self.batches for line in batch]


class TestProcessRunner:
    """Test cases for ProcessRunner."""

    async def test_forwards_stdout_lines(self, runner, suite_script):
        """Test complete lines are forwarded in order."""
        script = suite_script(
            """
            import sys
            for i in range(5):
                sys.stdout.write(f"line {i}\\n")
            """
        )
        collector = Collector()

        result = await runner.run(sys.executable, [str(script)], on_lines=collector)

        assert isinstance(result, ProcessResult)
        assert result.exit_code == 0
        assert collector.lines == [f"line {i}" for i in range(5)]
        assert result.output == "".join(f"line {i}\n" for i in range(5))

    async def test_forwards_both_channels(self, runner, suite_script):
        """Test stdout and stderr lines both arrive, each in its own order."""
        script = suite_script(
            """
            import sys
            for i in range(3):
                print(f"out {i}", flush=True)
                print(f"err {i}", file=sys.stderr, flush=True)
            """
        )
        collector = Collector()

        result = await runner.run(sys.executable, [str(script)], on_lines=collector)

        out_lines = [line for line in collector.lines if line.startswith("out")]
        err_lines = [line for line in collector.lines if line.startswith("err")]
        assert out_lines == ["out 0", "out 1", "out 2"]
        assert err_lines == ["err 0", "err 1", "err 2"]
        assert sorted(collector.lines) == sorted(out_lines + err_lines)
        for line in out_lines + err_lines:
            assert line in result.output

    async def test_non_zero_exit_is_a_result(self, runner, suite_script):
        """Test a failing suite still yields its exit code and output."""
        script = suite_script(
            """
            import sys
            print("1 failed")
            sys.exit(2)
            """
        )

        result = await runner.run(sys.executable, [str(script)])

        assert result.exit_code == 2
        assert not result.succeeded
        assert "1 failed" in result.output

    async def test_trailing_line_kept_in_output_only(self, runner, suite_script):
        """Test an unterminated last line is captured but never forwarded."""
        script = suite_script(
            """
            import sys
            sys.stdout.write("complete\\nno newline at end")
            """
        )
        collector = Collector()

        result = await runner.run(sys.executable, [str(script)], on_lines=collector)

        assert collector.lines == ["complete"]
        assert result.output.endswith("no newline at end")

    async def test_one_batch_per_chunk(self, suite_script):
        """Test lines completed by one chunk are forwarded together."""
        script = suite_script(
            """
            import sys
            sys.stdout.write("a\\nb\\nc\\n")
            """
        )
        collector = Collector()

        await ProcessRunner(chunk_size=1024).run(
            sys.executable, [str(script)], on_lines=collector
        )

        assert collector.batches == [["a", "b", "c"]]

    async def test_arguments_and_environment(self, runner, suite_script):
        """Test arguments and environment reach the child."""
        script = suite_script(
            """
            import os, sys
            print(sys.argv[1])
            print(os.environ["BASE_URL"])
            """
        )
        collector = Collector()

        await runner.run(
            sys.executable,
            [str(script), "--grep=@smoke"],
            on_lines=collector,
            env=dict(os.environ, BASE_URL="https://example.test"),
        )

        assert collector.lines == ["--grep=@smoke", "https://example.test"]

    async def test_sink_failure_does_not_stop_run(self, runner, suite_script):
        """Test a raising line sink does not interrupt output capture."""
        script = suite_script('print("hello")\nprint("world")\n')

        def broken_sink(lines):
            raise RuntimeError("sink down")

        result = await runner.run(sys.executable, [str(script)], on_lines=broken_sink)

        assert result.exit_code == 0
        assert result.output == "hello\nworld\n"

    async def test_spawn_failure(self, runner, tmp_path):
        """Test a missing executable is a spawn error, not an exit code."""
        missing = tmp_path / "no-such-binary"

        with pytest.raises(ProcessSpawnError) as exc_info:
            await runner.run(str(missing), ["--version"])

        assert exc_info.value.error_code == "PROCESS_SPAWN_FAILED"
        assert exc_info.value.command == [str(missing), "--version"]
        assert exc_info.value.status_code == 500

    async def test_timeout_kills_process(self, runner, suite_script):
        """Test the child is killed when the timeout expires."""
        script = suite_script(
            """
            import time
            print("started", flush=True)
            time.sleep(30)
            """
        )

        with pytest.raises(RunTimeoutError) as exc_info:
            await runner.run(sys.executable, [str(script)], timeout=2.0)

        assert exc_info.value.stage == "executing"
        assert "started" in exc_info.value.output

    async def test_mirror_output(self, suite_script, monkeypatch):
        """Test the debug variant copies output to the parent's console."""
        console = io.TextIOWrapper(io.BytesIO())
        monkeypatch.setattr(sys, "stdout", console)
        script = suite_script('print("mirrored line")\n')

        await ProcessRunner(mirror_output=True).run(sys.executable, [str(script)])

        assert b"mirrored line" in console.buffer.getvalue()
