"""Launch configuration for a child process.

LaunchConfig describes what to run and which streams to capture. It is
immutable, so a single config can launch any number of independent runs.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .types import CaptureMode

__all__ = [
    "LaunchConfig",
    "LaunchParams",
    "LineCallback",
]

IS_WINDOWS = sys.platform == "win32"

# Receives one line of output, without its line terminator
LineCallback = Callable[[str], None]


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    return token


@dataclass(frozen=True)
class LaunchParams:
    """Native launch parameters for asyncio.create_subprocess_exec.

    Attributes:
        argv: Program followed by its arguments
        cwd: Working directory (None = inherit)
        stdin: stdin disposition (None = inherit)
        stdout: stdout disposition (PIPE when captured, None = inherit)
        stderr: stderr disposition (PIPE when captured, None = inherit)
        creationflags: Windows process creation flags
    """

    argv: list[str]
    cwd: Path | None
    stdin: int | None
    stdout: int | None
    stderr: int | None
    creationflags: int = 0

    @property
    def console_mode(self) -> bool:
        """True when no stream is redirected and the child owns the console."""
        return self.stdout is None and self.stderr is None

    def to_kwargs(self) -> dict[str, Any]:
        """Build kwargs for asyncio.create_subprocess_exec (argv excluded)."""
        kwargs: dict[str, Any] = {
            "stdin": self.stdin,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "cwd": self.cwd,
        }
        if IS_WINDOWS and self.creationflags:
            kwargs["creationflags"] = self.creationflags
        return kwargs


@dataclass(frozen=True)
class LaunchConfig:
    """Description of a process to run.

    Example:
        config = LaunchConfig(
            program="git",
            arguments="status --short",
            working_directory=Path("/workspace"),
            on_stdout_line=print,
            capture_mode=CaptureMode.OUTPUT,
        )

    Attributes:
        program: Executable path or name, resolved through PATH (a path-like
            is converted to str)
        arguments: Raw argument string, split with shell-like rules
        working_directory: Working directory (None = inherit the caller's)
        create_no_window: Do not open a console window (Windows only)
        on_stdout_line: Called for every stdout line
        on_stderr_line: Called for every stderr line
        capture_mode: Streams accumulated into the RunResult
        drain_timeout: Seconds to wait for captured pipes to close after
            exit (None = wait until they close)
    """

    program: str
    arguments: str = ""
    working_directory: Path | None = None
    create_no_window: bool = False
    on_stdout_line: LineCallback | None = None
    on_stderr_line: LineCallback | None = None
    capture_mode: CaptureMode = CaptureMode.NONE
    drain_timeout: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.program, os.PathLike):
            object.__setattr__(self, "program", os.fspath(self.program))
        if not self.program or not self.program.strip():
            raise ValueError("program must be a non-empty string")
        if self.arguments is None:
            object.__setattr__(self, "arguments", "")
        if isinstance(self.working_directory, str):
            object.__setattr__(self, "working_directory", Path(self.working_directory))
        if isinstance(self.capture_mode, str):
            object.__setattr__(self, "capture_mode", CaptureMode.from_string(self.capture_mode))
        if self.drain_timeout is not None and self.drain_timeout < 0:
            raise ValueError("drain_timeout must be >= 0 or None")

    @property
    def is_capturing_stdout(self) -> bool:
        """Whether stdout is forwarded or accumulated."""
        return (
            self.on_stdout_line is not None
            or CaptureMode.OUTPUT in self.capture_mode
        )

    @property
    def is_capturing_stderr(self) -> bool:
        """Whether stderr is forwarded or accumulated."""
        return (
            self.on_stderr_line is not None
            or CaptureMode.ERROR in self.capture_mode
        )

    @property
    def is_capturing_any(self) -> bool:
        return self.is_capturing_stdout or self.is_capturing_stderr

    def split_arguments(self) -> list[str]:
        """Split the raw argument string into argv items."""
        if not self.arguments.strip():
            return []
        if not IS_WINDOWS:
            return shlex.split(self.arguments)
        # Non-POSIX splitting keeps the quotes around a token
        return [_unquote(token) for token in shlex.split(self.arguments, posix=False)]

    def to_launch_params(self) -> LaunchParams:
        """Translate this config into native launch parameters.

        A stream is redirected only when it is captured. When nothing is
        captured the child inherits stdin/stdout/stderr so console programs
        behave as if started from a shell; otherwise stdin is closed.
        """
        stdout = asyncio.subprocess.PIPE if self.is_capturing_stdout else None
        stderr = asyncio.subprocess.PIPE if self.is_capturing_stderr else None
        stdin = asyncio.subprocess.DEVNULL if self.is_capturing_any else None

        creationflags = 0
        if IS_WINDOWS and self.create_no_window:
            creationflags = subprocess.CREATE_NO_WINDOW

        return LaunchParams(
            argv=[self.program, *self.split_arguments()],
            cwd=self.working_directory,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            creationflags=creationflags,
        )
