"""LaunchConfig tests.

Test coverage:
- Validation and coercion
- Capture predicates
- Translation to launch parameters
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from async_process.launch_config import LaunchConfig
from async_process.types import CaptureMode

IS_WINDOWS = sys.platform == "win32"


class TestValidation:
    """Test construction rules."""

    def test_defaults(self):
        config = LaunchConfig(program="git")

        assert config.arguments == ""
        assert config.working_directory is None
        assert config.create_no_window is False
        assert config.on_stdout_line is None
        assert config.on_stderr_line is None
        assert config.capture_mode is CaptureMode.NONE
        assert config.drain_timeout is None

    @pytest.mark.parametrize("program", ["", "   "])
    def test_empty_program_rejected(self, program: str):
        with pytest.raises(ValueError):
            LaunchConfig(program=program)

    def test_negative_drain_timeout_rejected(self):
        with pytest.raises(ValueError):
            LaunchConfig(program="git", drain_timeout=-1)

    def test_string_coercion(self, tmp_path: Path):
        """Strings are accepted for working_directory and capture_mode."""
        config = LaunchConfig(
            program="git",
            working_directory=str(tmp_path),
            capture_mode="Error",
        )

        assert config.working_directory == tmp_path
        assert config.capture_mode is CaptureMode.ERROR

    def test_path_program_converted_to_str(self):
        """A path-like program is stored and launched as a string."""
        config = LaunchConfig(program=Path("bin") / "tool", arguments="--version")

        assert config.program == str(Path("bin") / "tool")
        assert config.to_launch_params().argv == [str(Path("bin") / "tool"), "--version"]

    def test_unknown_capture_mode_rejected(self):
        with pytest.raises(ValueError):
            LaunchConfig(program="git", capture_mode="everything")

    def test_frozen(self):
        config = LaunchConfig(program="git")

        with pytest.raises(AttributeError):
            config.program = "other"  # type: ignore


class TestCapturePredicates:
    """Test is_capturing_* predicates."""

    def test_nothing_captured(self):
        config = LaunchConfig(program="git")

        assert not config.is_capturing_stdout
        assert not config.is_capturing_stderr
        assert not config.is_capturing_any

    def test_callback_implies_capture(self):
        config = LaunchConfig(program="git", on_stderr_line=print)

        assert not config.is_capturing_stdout
        assert config.is_capturing_stderr
        assert config.is_capturing_any

    @pytest.mark.parametrize(
        ("mode", "stdout", "stderr"),
        [
            (CaptureMode.OUTPUT, True, False),
            (CaptureMode.ERROR, False, True),
            (CaptureMode.BOTH, True, True),
        ],
    )
    def test_capture_mode_implies_capture(self, mode: CaptureMode, stdout: bool, stderr: bool):
        config = LaunchConfig(program="git", capture_mode=mode)

        assert config.is_capturing_stdout is stdout
        assert config.is_capturing_stderr is stderr


class TestLaunchParams:
    """Test translation to native launch parameters."""

    def test_console_mode_inherits_streams(self):
        """Without capture nothing is redirected."""
        params = LaunchConfig(program="git", arguments="status").to_launch_params()

        assert params.argv == ["git", "status"]
        assert params.stdin is None
        assert params.stdout is None
        assert params.stderr is None
        assert params.console_mode is True

    def test_only_captured_stream_redirected(self):
        params = LaunchConfig(program="git", on_stdout_line=print).to_launch_params()

        assert params.stdout == asyncio.subprocess.PIPE
        assert params.stderr is None
        assert params.stdin == asyncio.subprocess.DEVNULL
        assert params.console_mode is False

    def test_both_streams_redirected(self):
        params = LaunchConfig(program="git", capture_mode=CaptureMode.BOTH).to_launch_params()

        assert params.stdout == asyncio.subprocess.PIPE
        assert params.stderr == asyncio.subprocess.PIPE

    def test_working_directory_passed(self, tmp_path: Path):
        params = LaunchConfig(program="git", working_directory=tmp_path).to_launch_params()

        assert params.cwd == tmp_path
        assert params.to_kwargs()["cwd"] == tmp_path

    def test_quoted_arguments(self):
        config = LaunchConfig(program="prog", arguments='-m "hello world" --flag')

        assert config.split_arguments() == ["-m", "hello world", "--flag"]

    def test_blank_arguments(self):
        assert LaunchConfig(program="prog", arguments="   ").split_arguments() == []

    @pytest.mark.skipif(IS_WINDOWS, reason="Windows adds creationflags")
    def test_no_window_ignored_on_posix(self):
        params = LaunchConfig(program="git", create_no_window=True).to_launch_params()

        assert params.creationflags == 0
        assert "creationflags" not in params.to_kwargs()

    @pytest.mark.skipif(not IS_WINDOWS, reason="Windows-specific flag")
    def test_no_window_on_windows(self):
        import subprocess

        params = LaunchConfig(program="git", create_no_window=True).to_launch_params()

        assert params.creationflags == subprocess.CREATE_NO_WINDOW
        assert params.to_kwargs()["creationflags"] == subprocess.CREATE_NO_WINDOW
