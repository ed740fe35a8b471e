"""
Process runner with live line forwarding.

Spawns the external test suite, reads both output channels concurrently,
forwards completed lines as they arrive and captures the full console
output for the final run message.
"""

import asyncio
import sys
import time
from typing import Callable, Dict, List, Optional, Sequence, Union
from pathlib import Path

from ..core.exceptions import ProcessSpawnError, RunTimeoutError
from ..core.logging_config import get_logger, log_performance
from .line_buffer import LineBuffer
from .models import ProcessResult


CHUNK_SIZE = 64 * 1024
KILL_GRACE_SECONDS = 5.0

LineSink = Callable[[List[str]], None]


class ProcessRunner:
    """
    Runs one external command and relays its output.

    Each output channel gets its own LineBuffer, so bytes from stdout and
    stderr are never merged into one line. The shared full-output capture
    follows chunk arrival order across both channels.
    """

    def __init__(
        self,
        mirror_output: bool = False,
        chunk_size: int = CHUNK_SIZE,
        run_token: Optional[str] = None,
    ):
        """
        Initialize the process runner.

        Args:
            mirror_output: Also copy raw output to this process's stdout/stderr
            chunk_size: Maximum bytes read from a channel at once
            run_token: Optional run token for log correlation
        """
        self.mirror_output = mirror_output
        self.chunk_size = chunk_size
        if run_token:
            self.logger = get_logger(__name__, run_token=run_token)
        else:
            self.logger = get_logger(__name__)

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        on_lines: Optional[LineSink] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """
        Run the command until it exits.

        Args:
            command: Executable to start
            args: Arguments passed to the executable
            on_lines: Receives each batch of completed lines, one call per chunk
            env: Full environment for the child, inherited when None
            cwd: Working directory for the child
            timeout: Seconds before the child is killed

        Returns:
            Exit code and full captured output; a non-zero exit code is
            a normal result

        Raises:
            ProcessSpawnError: If the command could not be started
            RunTimeoutError: If the timeout expired first
        """
        argv = [command, *args]
        self.logger.info(
            f"Starting process: {command}",
            extra={"metadata": {"argv": argv, "cwd": str(cwd) if cwd else None}},
        )

        start_time = time.time()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as e:
            self.logger.error(f"Failed to start process {command}: {e}")
            raise ProcessSpawnError(
                f"Failed to start test process: {e}", command=argv
            ) from e

        output = bytearray()

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._pump(process.stdout, "stdout", output, on_lines),
                    self._pump(process.stderr, "stderr", output, on_lines),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            captured = self._decode(output)
            self.logger.warning(
                f"Process timed out after {timeout}s and was killed",
                extra={"metadata": {"pid": process.pid, "timeout": timeout}},
            )
            raise RunTimeoutError(
                f"Test process timed out after {timeout}s\n{captured}",
                stage="executing",
                output=captured,
            )
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        duration = time.time() - start_time
        exit_code = process.returncode

        log_performance(
            self.logger,
            "test_process",
            duration,
            exit_code=exit_code,
            output_bytes=len(output),
        )

        return ProcessResult(
            exit_code=exit_code,
            output=self._decode(output),
            duration=duration,
        )

    async def _pump(
        self,
        stream: asyncio.StreamReader,
        channel: str,
        output: bytearray,
        on_lines: Optional[LineSink],
    ) -> None:
        """Read one channel to EOF, forwarding completed lines per chunk."""
        buffer = LineBuffer()
        mirror = None
        if self.mirror_output:
            mirror = sys.stdout.buffer if channel == "stdout" else sys.stderr.buffer

        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break

            output.extend(chunk)

            if mirror is not None:
                mirror.write(chunk)
                mirror.flush()

            lines = list(buffer.append(chunk))
            if lines and on_lines is not None:
                try:
                    on_lines(lines)
                except Exception as e:
                    self.logger.warning(f"Line sink failed for {channel}: {e}")

        if buffer.pending:
            self.logger.debug(
                f"{channel} ended without a trailing newline; "
                f"{len(buffer.pending)} bytes kept in output only"
            )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill the child and reap it."""
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            self.logger.error(f"Process {process.pid} did not exit after kill")

    @staticmethod
    def _decode(output: bytearray) -> str:
        return bytes(output).decode("utf-8", errors="replace")
