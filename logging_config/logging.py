"""
结构化日志配置

使用 structlog，事件名为 snake_case，上下文以关键字参数传入

日志格式:
- json: 生产环境
- console: 开发环境彩色输出
- auto: production 使用 json，其它环境使用 console
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import structlog
from structlog.typing import Processor

from core.config import get_settings

# 只在 WARNING 以上输出的第三方库
NOISY_LOGGERS = ["uvicorn.access", "httpx", "httpcore", "celery.worker.strategy"]


def resolve_format(log_format: str, environment: str) -> str:
    """把 auto 解析为具体格式"""
    if log_format == "auto":
        return "json" if environment == "production" else "console"
    return log_format


def setup_logging(
    level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    配置 structlog 日志系统

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 日志格式 (json, console, auto)
        log_file: 日志文件路径，按大小轮转
    """
    settings = get_settings()

    level = (level or settings.logging.level).upper()
    log_format = resolve_format(log_format or settings.logging.format, settings.environment)
    log_file = log_file or settings.logging.file_path

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderers: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=settings.logging.max_size_mb * 1024 * 1024,
            backupCount=settings.logging.backup_count,
            encoding="utf-8",
        ))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level),
        handlers=handlers,
        force=True,
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """获取 logger 实例，name 通常为 __name__"""
    return structlog.get_logger(name)
