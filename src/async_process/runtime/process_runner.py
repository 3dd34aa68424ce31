"""Process runner with cancellable waiting and reliable output capture.

async-process runtime module v0.1.0

This module provides:
- Start of a child process described by a LaunchConfig
- Line-by-line stdout/stderr forwarding and accumulation
- Exit polling raced against a caller-owned cancellation signal
- Forced termination with drain wait, shielded from cancellation

Key design points:
- Every run failure is reported through RunResult.state, never raised
- Cancellation is polled, so it is observed within one poll interval
- Cancellation wins a tie with natural exit
- Termination and drain run exactly once per run, whatever the outcome
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import anyio

from ..config import get_config
from ..launch_config import LaunchConfig, LaunchParams, LineCallback
from ..types import EXIT_CODE_UNAVAILABLE, CaptureMode, CompletionState, RunResult

__all__ = [
    "ProcessRunner",
    "run_process",
]

logger = logging.getLogger(__name__)


@dataclass
class _StreamCapture:
    """Capture state of one redirected stream for a single run.

    Written only by the stream's listener task, read by the run once the
    listener finished or the drain wait gave up.
    """

    name: str
    callback: LineCallback | None
    accumulate: bool
    lines: list[str] = field(default_factory=list)
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None

    def deliver(self, line: str) -> None:
        if self.callback is not None:
            try:
                self.callback(line)
            except Exception as e:
                logger.warning(f"Error in {self.name} line callback: {e}")
        if self.accumulate:
            self.lines.append(line)

    @property
    def text(self) -> str:
        return "".join(f"{line}\n" for line in self.lines)


@dataclass
class _Outcome:
    state: CompletionState
    cause: BaseException | None = None
    exit_code: int = EXIT_CODE_UNAVAILABLE


def _decode_line(raw: bytes) -> str:
    """Decode one line and strip a single line terminator."""
    line = raw.decode("utf-8", errors="replace")
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def _is_bad_working_directory(error: FileNotFoundError, params: LaunchParams) -> bool:
    """Tell a missing working directory apart from a missing program."""
    if params.cwd is None:
        return False
    if error.filename is not None and os.fspath(error.filename) == os.fspath(params.cwd):
        return True
    return not Path(params.cwd).is_dir()


class ProcessRunner:
    """Runs one child process and reports a single RunResult.

    The runner owns the process handle and the per-run capture state.
    The cancellation signal is an anyio.CancelScope owned by the caller and
    used as a flag: the runner only reads ``cancel_called`` and never enters
    the scope, so one scope can be shared by several runners.

    Example:
        cancel_scope = anyio.CancelScope()
        config = LaunchConfig(
            program="ping",
            arguments="-c 3 127.0.0.1",
            capture_mode=CaptureMode.OUTPUT,
        )

        with ProcessRunner(config, cancel_scope) as runner:
            result = await runner.run()

        if result.state is CompletionState.COMPLETED:
            print(result.exit_code, result.stdout)

    Attributes:
        config: The launch configuration
        poll_interval: Seconds between exit/cancellation checks
        kill_retry_delay: Seconds between kill attempts
        line_limit: Stream reader buffer size; longer lines are read in pieces
    """

    def __init__(
        self,
        config: LaunchConfig,
        cancel_scope: anyio.CancelScope | None = None,
        *,
        poll_interval: float | None = None,
        kill_retry_delay: float | None = None,
        line_limit: int | None = None,
    ) -> None:
        """Bind the runner to a config and an optional cancellation signal.

        Args:
            config: What to run
            cancel_scope: Cancellation signal (None = never cancelled)
            poll_interval: Exit poll interval (default from configuration)
            kill_retry_delay: Kill retry delay (default from configuration)
            line_limit: Reader buffer size in bytes (default from configuration)
        """
        settings = get_config()
        self.config = config
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.kill_retry_delay = (
            kill_retry_delay if kill_retry_delay is not None else settings.kill_retry_delay
        )
        self.line_limit = line_limit if line_limit is not None else settings.line_limit

        self._cancel_scope = cancel_scope
        self._process: asyncio.subprocess.Process | None = None
        self._pid: int | None = None
        self._started = False
        self._running = False
        self._disposed = False

    @property
    def is_running(self) -> bool:
        """True while the process runs or its output is still being drained."""
        return self._running

    @property
    def pid(self) -> int | None:
        """PID of the started process, None before a successful start."""
        return self._pid

    @property
    def cancellation_requested(self) -> bool:
        return self._cancel_scope is not None and self._cancel_scope.cancel_called

    async def run(self) -> RunResult:
        """Run the process to a terminal state.

        This method:
        1. Starts the process (start failures become the result)
        2. Starts a listener per captured stream
        3. Polls for exit or cancellation
        4. Kills the process and drains captured output, shielded
        5. Builds the result

        Returns:
            The run's RunResult

        Raises:
            RuntimeError: If called twice or after dispose()
            asyncio.CancelledError: If the awaiting task itself is cancelled
                (cleanup has completed or is still running shielded)
        """
        if self._disposed:
            raise RuntimeError("ProcessRunner has been disposed")
        if self._started:
            raise RuntimeError("ProcessRunner.run() may only be called once")
        self._started = True

        params = self.config.to_launch_params()
        started = await self._start(params)
        if isinstance(started, RunResult):
            return started

        process = started
        self._running = True
        captures = self._start_capture(process)

        outcome = _Outcome(CompletionState.UNKNOWN)
        try:
            outcome = await self._wait_for_exit(process)
        except asyncio.CancelledError:
            logger.debug(f"Run cancelled while waiting pid={process.pid}")
            outcome = _Outcome(CompletionState.CANCELLED)
            raise
        finally:
            await self._safe_cleanup(process, captures, outcome)

        if outcome.state is not CompletionState.COMPLETED:
            return RunResult.failed(outcome.state, outcome.cause)
        return self._finalize(outcome, captures)

    async def _start(
        self, params: LaunchParams
    ) -> asyncio.subprocess.Process | RunResult:
        """Start the process.

        Returns:
            The started process, or a failure result
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *params.argv,
                limit=self.line_limit,
                **params.to_kwargs(),
            )
        except FileNotFoundError as e:
            if _is_bad_working_directory(e, params):
                logger.debug(f"Working directory not usable cwd={params.cwd}: {e}")
                return RunResult.failed(CompletionState.UNKNOWN, e)
            logger.debug(f"Program not found argv={params.argv[0]}: {e}")
            return RunResult.failed(CompletionState.PROCESS_MISSING, e)
        except Exception as e:
            logger.debug(f"Failed to start argv={params.argv[0]}: {e!r}")
            return RunResult.failed(CompletionState.UNKNOWN, e)

        if process.pid is None:
            logger.debug(f"Subprocess did not start argv={params.argv[0]}")
            return RunResult.failed(CompletionState.FAILED_TO_START)

        self._process = process
        self._pid = process.pid
        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={params.argv[0]} cwd={params.cwd} "
            f"console_mode={params.console_mode}"
        )
        return process

    def _start_capture(self, process: asyncio.subprocess.Process) -> list[_StreamCapture]:
        """Start one listener task per captured stream.

        The pipes buffer output until the listeners read it, so nothing the
        child writes before this point is lost.
        """
        config = self.config
        captures: list[_StreamCapture] = []

        if config.is_capturing_stdout and process.stdout is not None:
            capture = _StreamCapture(
                name="stdout",
                callback=config.on_stdout_line,
                accumulate=CaptureMode.OUTPUT in config.capture_mode,
            )
            capture.task = asyncio.create_task(self._pump(process.stdout, capture))
            captures.append(capture)

        if config.is_capturing_stderr and process.stderr is not None:
            capture = _StreamCapture(
                name="stderr",
                callback=config.on_stderr_line,
                accumulate=CaptureMode.ERROR in config.capture_mode,
            )
            capture.task = asyncio.create_task(self._pump(process.stderr, capture))
            captures.append(capture)

        return captures

    async def _read_line(self, stream: asyncio.StreamReader, name: str) -> bytes:
        """Read one full line, however long, including its terminator.

        A line longer than the stream buffer limit is collected in pieces
        instead of being cut, so no byte is lost or split into extra lines.

        Returns:
            The line, or b"" at end-of-stream
        """
        chunks: list[bytes] = []
        while True:
            try:
                chunks.append(await stream.readuntil(b"\n"))
                break
            except asyncio.IncompleteReadError as e:
                # EOF: the last line may have no terminator
                chunks.append(e.partial)
                break
            except asyncio.LimitOverrunError as e:
                chunks.append(await stream.read(e.consumed))
        if len(chunks) > 1:
            logger.debug(f"{name} line read in {len(chunks)} pieces")
        return b"".join(chunks)

    async def _pump(self, stream: asyncio.StreamReader, capture: _StreamCapture) -> None:
        """Deliver every line of a stream until end-of-stream.

        Blank lines are delivered like any other line; only EOF ends the loop
        and marks the stream closed.
        """
        try:
            while True:
                raw = await self._read_line(stream, capture.name)
                if not raw:
                    break
                capture.deliver(_decode_line(raw))
        except Exception as e:
            logger.warning(f"Error reading {capture.name}: {e!r}")
        finally:
            capture.closed.set()
            logger.debug(f"{capture.name} listener finished lines={len(capture.lines)}")

    def _has_exited(self, process: asyncio.subprocess.Process) -> bool:
        return process.returncode is not None

    async def _wait_for_exit(self, process: asyncio.subprocess.Process) -> _Outcome:
        """Poll for exit, observing the cancellation signal on every tick."""
        try:
            while True:
                exited = self._has_exited(process)
                # Sampled after exit so cancellation wins a tie
                if self.cancellation_requested:
                    logger.debug(f"Cancellation observed pid={process.pid}")
                    return _Outcome(CompletionState.CANCELLED)
                if exited:
                    logger.debug(
                        f"Subprocess exited pid={process.pid} "
                        f"returncode={process.returncode}"
                    )
                    return _Outcome(
                        CompletionState.COMPLETED, exit_code=process.returncode
                    )
                await asyncio.sleep(self.poll_interval)
        except Exception as e:
            logger.warning(f"Error waiting for subprocess pid={process.pid}: {e!r}")
            return _Outcome(CompletionState.UNKNOWN, e)

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process,
        captures: list[_StreamCapture],
        outcome: _Outcome,
    ) -> None:
        """Terminate and drain, shielded from cancellation.

        If the shield itself is cancelled the shielded cleanup keeps running
        in the background; termination is still confirmed here before the
        cancellation propagates.
        """
        try:
            await asyncio.shield(self._terminate_and_drain(process, captures, outcome))
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

    async def _terminate_and_drain(
        self,
        process: asyncio.subprocess.Process,
        captures: list[_StreamCapture],
        outcome: _Outcome,
    ) -> None:
        try:
            await self._terminate(process)

            # A cancelled run does not wait for pipes that are being torn down
            if outcome.state is not CompletionState.CANCELLED:
                for capture in captures:
                    await self._wait_closed(capture)
        finally:
            await self._stop_capture(captures)
            self._running = False
            self.dispose()

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill the process and retry until its exit is confirmed.

        A no-op when the process has already exited.
        """
        attempts = 0
        while process.returncode is None:
            attempts += 1
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await asyncio.sleep(self.kill_retry_delay)

        if attempts:
            logger.debug(
                f"Subprocess killed pid={process.pid} "
                f"attempts={attempts} returncode={process.returncode}"
            )

    async def _wait_closed(self, capture: _StreamCapture) -> None:
        timeout = self.config.drain_timeout
        try:
            await asyncio.wait_for(capture.closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(
                f"{capture.name} not closed after {timeout}s, "
                f"finalizing with {len(capture.lines)} line(s)"
            )

    async def _stop_capture(self, captures: list[_StreamCapture]) -> None:
        """Cancel listeners that are still running and wait for them."""
        for capture in captures:
            if capture.task is not None and not capture.task.done():
                capture.task.cancel()

        for capture in captures:
            if capture.task is None:
                continue
            try:
                await capture.task
            except asyncio.CancelledError:
                pass

    def _finalize(
        self,
        outcome: _Outcome,
        captures: list[_StreamCapture],
    ) -> RunResult:
        mode = self.config.capture_mode
        by_name = {capture.name: capture for capture in captures}

        stdout = None
        if CaptureMode.OUTPUT in mode and "stdout" in by_name:
            stdout = by_name["stdout"].text

        stderr = None
        if CaptureMode.ERROR in mode and "stderr" in by_name:
            stderr = by_name["stderr"].text

        return RunResult.completed(outcome.exit_code, stdout=stdout, stderr=stderr)

    def dispose(self) -> None:
        """Release the process handle. Safe to call any number of times."""
        if self._disposed:
            return
        self._disposed = True

        process, self._process = self._process, None
        if process is None:
            return

        # asyncio exposes no public close for the subprocess transport
        transport = getattr(process, "_transport", None)
        if transport is not None:
            transport.close()
        logger.debug(f"Released subprocess handle pid={self._pid}")

    def __enter__(self) -> "ProcessRunner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        status = "running" if self._running else ("done" if self._started else "idle")
        return (
            f"ProcessRunner(program={self.config.program}, "
            f"pid={self._pid}, "
            f"status={status})"
        )


async def run_process(
    target: str | LaunchConfig,
    arguments: str = "",
    *,
    cancel_scope: anyio.CancelScope | None = None,
) -> RunResult:
    """Run a program (or a LaunchConfig) and release the runner afterwards.

    Covers the three common call shapes:
        await run_process("git")
        await run_process("git", "status --short")
        await run_process(LaunchConfig(program="git", capture_mode="output"))

    Args:
        target: Program name/path, or a complete LaunchConfig
        arguments: Raw argument string (only with a program name)
        cancel_scope: Optional cancellation signal

    Returns:
        The run's RunResult

    Raises:
        TypeError: If arguments are given together with a LaunchConfig
    """
    if isinstance(target, LaunchConfig):
        if arguments:
            raise TypeError("arguments cannot be combined with a LaunchConfig")
        config = target
    else:
        config = LaunchConfig(program=target, arguments=arguments)

    runner = ProcessRunner(config, cancel_scope)
    try:
        return await runner.run()
    finally:
        runner.dispose()
