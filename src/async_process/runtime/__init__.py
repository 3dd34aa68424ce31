"""Runtime module for child process execution.

This module provides cancellable process runs with output capture and
reliable termination.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, run_process

__all__ = [
    "ProcessRunner",
    "run_process",
]
