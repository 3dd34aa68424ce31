#!/usr/bin/env python3
"""Fake child program for process runner tests.

Writes a predictable pattern to stdout/stderr, optionally sleeps, then exits
with the requested code.

Usage:
    python fake_child.py [--lines N] [--blank-every K] [--stderr-lines N]
                         [--long-line N] [--crlf] [--no-final-newline] [--print-cwd]
                         [--sleep SECONDS] [--exit-code CODE]

Output format:
    stdout: line1, line2, ... (an empty line after every K-th line)
    stderr: err1, err2, ...
    --long-line: N x characters, a pause, then "TAIL\n" and "next\n"
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from typing import NoReturn


def write_lines(stream, lines: list[str], terminator: bytes, final_newline: bool) -> None:
    """Write raw bytes so line terminators are exactly what the test asked for."""
    for index, line in enumerate(lines):
        stream.write(line.encode("utf-8"))
        if final_newline or index < len(lines) - 1:
            stream.write(terminator)
    stream.flush()


def main() -> NoReturn:
    parser = argparse.ArgumentParser(description="Fake child for testing")
    parser.add_argument("--lines", type=int, default=0, help="stdout lines to write")
    parser.add_argument("--blank-every", type=int, default=0, help="blank line after every K lines")
    parser.add_argument("--stderr-lines", type=int, default=0, help="stderr lines to write")
    parser.add_argument("--long-line", type=int, default=0, help="write an N-byte line in two pieces")
    parser.add_argument("--crlf", action="store_true", help="terminate lines with CRLF")
    parser.add_argument("--no-final-newline", action="store_true", help="omit the last terminator")
    parser.add_argument("--print-cwd", action="store_true", help="write the working directory first")
    parser.add_argument("--sleep", type=float, default=0.0, help="seconds to sleep before exiting")
    parser.add_argument("--exit-code", type=int, default=0, help="exit code")
    args = parser.parse_args()

    terminator = b"\r\n" if args.crlf else b"\n"
    final_newline = not args.no_final_newline

    stdout_lines: list[str] = []
    if args.print_cwd:
        stdout_lines.append(os.getcwd())
    for i in range(1, args.lines + 1):
        stdout_lines.append(f"line{i}")
        if args.blank_every and i % args.blank_every == 0:
            stdout_lines.append("")

    stderr_lines = [f"err{i}" for i in range(1, args.stderr_lines + 1)]

    if args.long_line:
        # Flushed apart so the reader sees the line arrive in pieces
        sys.stdout.buffer.write(b"x" * args.long_line)
        sys.stdout.buffer.flush()
        time.sleep(0.2)
        sys.stdout.buffer.write(b"TAIL\nnext\n")
        sys.stdout.buffer.flush()

    if stdout_lines:
        write_lines(sys.stdout.buffer, stdout_lines, terminator, final_newline)
    if stderr_lines:
        write_lines(sys.stderr.buffer, stderr_lines, terminator, True)

    if args.sleep > 0:
        time.sleep(args.sleep)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
