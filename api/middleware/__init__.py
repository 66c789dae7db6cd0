# API 中间件
from .logging import LoggingMiddleware
from .error_handler import ErrorCode, register_exception_handlers

__all__ = [
    "LoggingMiddleware",
    "ErrorCode",
    "register_exception_handlers",
]
