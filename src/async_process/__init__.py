"""async-process - run child programs from asyncio with capture and cancellation.

环境变量:
    ASYNC_PROCESS_POLL_INTERVAL: 退出轮询间隔 (默认 0.01s)
    ASYNC_PROCESS_KILL_RETRY_DELAY: kill 重试间隔 (默认 0.001s)
    ASYNC_PROCESS_LINE_LIMIT: 单行最大字节数 (默认 1 MiB)
    ASYNC_PROCESS_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    result = await run_process("git", "status --short")
"""

__version__ = "0.1.0"

from .config import configure_logging
from .launch_config import LaunchConfig
from .runtime import ProcessRunner, run_process
from .types import EXIT_CODE_UNAVAILABLE, CaptureMode, CompletionState, RunResult

__all__ = [
    "__version__",
    "CaptureMode",
    "CompletionState",
    "EXIT_CODE_UNAVAILABLE",
    "LaunchConfig",
    "ProcessRunner",
    "RunResult",
    "configure_logging",
    "run_process",
]
