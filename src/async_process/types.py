"""Result and mode types for async-process.

Defines the completion states, capture modes and the run result record.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, Flag

__all__ = [
    "CaptureMode",
    "CompletionState",
    "EXIT_CODE_UNAVAILABLE",
    "RunResult",
]

# Exit code reported when the process did not complete
EXIT_CODE_UNAVAILABLE = -(2**31)


class CompletionState(str, Enum):
    """Terminal state of a run.

    - COMPLETED: the process exited on its own, exit_code is valid
    - UNKNOWN: something unexpected failed, cause holds the exception
    - CANCELLED: the caller signalled cancellation
    - FAILED_TO_START: the process could not be started, no detail available
    - PROCESS_MISSING: the program to run could not be found
    """

    COMPLETED = "completed"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"
    FAILED_TO_START = "failed-to-start"
    PROCESS_MISSING = "process-missing"


class CaptureMode(Flag):
    """Which streams are accumulated into the RunResult."""

    NONE = 0
    OUTPUT = 1
    ERROR = 2
    BOTH = OUTPUT | ERROR

    @classmethod
    def from_string(cls, value: str) -> "CaptureMode":
        """Parse a capture mode name.

        Args:
            value: none/output/error/both, case-insensitive

        Returns:
            The matching CaptureMode

        Raises:
            ValueError: If the name is not a known mode
        """
        name = value.strip().upper()
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown capture mode: {value!r}") from None


@dataclass(frozen=True)
class RunResult:
    """Outcome of a single process run.

    Always check ``state`` before trusting ``exit_code`` or captured text:
    the sentinel exit code alone does not prove failure.

    Attributes:
        state: Terminal completion state
        exit_code: Process exit code, EXIT_CODE_UNAVAILABLE unless COMPLETED
        cause: Exception behind UNKNOWN/PROCESS_MISSING states
        stdout: Captured standard output (None when not requested)
        stderr: Captured standard error (None when not requested)
    """

    state: CompletionState
    exit_code: int = EXIT_CODE_UNAVAILABLE
    cause: BaseException | None = None
    stdout: str | None = None
    stderr: str | None = None

    @classmethod
    def completed(
        cls,
        exit_code: int,
        stdout: str | None = None,
        stderr: str | None = None,
    ) -> "RunResult":
        return cls(
            state=CompletionState.COMPLETED,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )

    @classmethod
    def failed(
        cls,
        state: CompletionState,
        cause: BaseException | None = None,
    ) -> "RunResult":
        if state is CompletionState.COMPLETED:
            raise ValueError("A completed result needs an exit code")
        return cls(state=state, cause=cause)

    @property
    def is_completed(self) -> bool:
        """Whether the process ran to completion."""
        return self.state is CompletionState.COMPLETED

    def __repr__(self) -> str:
        parts = [f"state={self.state.value}"]
        if self.is_completed:
            parts.append(f"exit_code={self.exit_code}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        if self.stdout is not None:
            parts.append(f"stdout={len(self.stdout)} chars")
        if self.stderr is not None:
            parts.append(f"stderr={len(self.stderr)} chars")
        return f"RunResult({', '.join(parts)})"
