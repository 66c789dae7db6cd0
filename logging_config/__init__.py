# 日志配置模块
from .logging import setup_logging, get_logger, resolve_format

__all__ = [
    "setup_logging",
    "get_logger",
    "resolve_format",
]
