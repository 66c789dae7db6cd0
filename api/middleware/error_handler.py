"""
全局异常处理

将领域异常转换为统一错误响应
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from api.schemas.response import error_response
from core.config import get_settings
from core.exceptions import (
    AlertingError,
    RuleValidationError,
    ChannelConfigError,
    ProviderNotFoundError,
    ResourceNotFoundError,
    InvalidTransitionError,
)

logger = structlog.get_logger(__name__)


class ErrorCode:
    """错误码定义"""
    # 通用错误 (40xxx)
    BAD_REQUEST = 40000
    RULE_INVALID = 40001
    CHANNEL_CONFIG_INVALID = 40002
    PARAMETER_INVALID = 40003
    PROVIDER_NOT_FOUND = 40401
    RESOURCE_NOT_FOUND = 40402
    INVALID_TRANSITION = 40901

    # 服务器错误 (50xxx)
    INTERNAL_ERROR = 50000


# 异常类型 -> (HTTP 状态码, 错误码, 消息)，按顺序匹配
EXCEPTION_MAP = [
    (RuleValidationError, 400, ErrorCode.RULE_INVALID, "告警规则不合法"),
    (ChannelConfigError, 400, ErrorCode.CHANNEL_CONFIG_INVALID, "渠道配置不合法"),
    (ProviderNotFoundError, 404, ErrorCode.PROVIDER_NOT_FOUND, "提供方未找到"),
    (ResourceNotFoundError, 404, ErrorCode.RESOURCE_NOT_FOUND, "资源未找到"),
    (InvalidTransitionError, 409, ErrorCode.INVALID_TRANSITION, "状态转换无效"),
    (AlertingError, 400, ErrorCode.BAD_REQUEST, "请求无效"),
]


async def alerting_error_handler(request: Request, exc: AlertingError) -> JSONResponse:
    """领域异常处理"""
    for exc_type, status_code, code, message in EXCEPTION_MAP:
        if isinstance(exc, exc_type):
            break
    logger.warning(
        "request_rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            message=message,
            code=code,
            error_type=type(exc).__name__,
            detail=str(exc),
        ),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or None
    logger.warning("request_validation_failed", path=request.url.path, errors=len(errors))
    return JSONResponse(
        status_code=400,
        content=error_response(
            message="参数错误",
            code=ErrorCode.PARAMETER_INVALID,
            error_type="ValidationError",
            detail=first.get("msg", "Invalid request"),
            field=field,
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """全局异常处理器"""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content=error_response(
            message="内部服务器错误",
            code=ErrorCode.INTERNAL_ERROR,
            error_type="InternalError",
            detail=str(exc) if get_settings().debug else "发生未预期的错误，请联系管理员",
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AlertingError, alerting_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
