"""async-process 环境变量配置管理。

环境变量:
    ASYNC_PROCESS_POLL_INTERVAL: 等待进程退出时的轮询间隔（秒）
        - 默认 0.01 秒
        - 限制在 0.001-0.01 秒范围，保证取消在一个间隔内被观察到

    ASYNC_PROCESS_KILL_RETRY_DELAY: 强制终止后重新检查/重发 kill 的间隔（秒）
        - 默认 0.001 秒
        - 限制在 0.001-1.0 秒范围

    ASYNC_PROCESS_LINE_LIMIT: 捕获输出时单行的最大字节数
        - 默认 1048576 (1 MiB)
        - 最小 1024

    ASYNC_PROCESS_LOG_DEBUG: 日志调试模式
        - true/1/yes/on = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "configure_logging",
    "get_config",
    "load_config",
    "reload_config",
]

DEFAULT_POLL_INTERVAL = 0.01
DEFAULT_KILL_RETRY_DELAY = 0.001
DEFAULT_LINE_LIMIT = 1024 * 1024

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """解析时间间隔环境变量，超出范围时截断，无效值返回默认值。"""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if seconds != seconds:  # NaN
        return default
    return max(minimum, min(seconds, maximum))


def _parse_line_limit(value: str | None) -> int:
    """解析单行字节上限。"""
    if not value:
        return DEFAULT_LINE_LIMIT
    try:
        limit = int(value)
    except ValueError:
        return DEFAULT_LINE_LIMIT
    return max(1024, limit)


@dataclass
class Config:
    """async-process 配置。

    Attributes:
        poll_interval: 等待退出时的轮询间隔（秒）
        kill_retry_delay: kill 重试间隔（秒）
        line_limit: 捕获输出时的读取缓冲区字节数（超长行分段读取）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    kill_retry_delay: float = DEFAULT_KILL_RETRY_DELAY
    line_limit: int = DEFAULT_LINE_LIMIT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(poll_interval={self.poll_interval}, "
            f"kill_retry_delay={self.kill_retry_delay}, "
            f"line_limit={self.line_limit}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "async-process"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"async_process_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("ASYNC_PROCESS_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        poll_interval=_parse_seconds(
            os.environ.get("ASYNC_PROCESS_POLL_INTERVAL"),
            DEFAULT_POLL_INTERVAL,
            minimum=0.001,
            maximum=0.01,
        ),
        kill_retry_delay=_parse_seconds(
            os.environ.get("ASYNC_PROCESS_KILL_RETRY_DELAY"),
            DEFAULT_KILL_RETRY_DELAY,
            minimum=0.001,
            maximum=1.0,
        ),
        line_limit=_parse_line_limit(os.environ.get("ASYNC_PROCESS_LINE_LIMIT")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config


def configure_logging(config: Config | None = None) -> logging.Handler:
    """配置日志输出。

    库本身不会在导入时配置日志，由应用在启动时调用。

    - LOG_DEBUG 模式：DEBUG 级别输出到临时文件
    - 默认模式：INFO 级别输出到 stderr

    第三方库（root logger）保持 WARNING，只对 async_process 命名空间启用详细日志。

    Args:
        config: 配置（默认使用全局配置）

    Returns:
        安装的日志 handler
    """
    config = config or get_config()

    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("async_process").setLevel(log_level)
    return handler
