"""
统一响应格式
"""
import math
import uuid
from datetime import datetime
from typing import TypeVar, Generic, Optional, Any

from pydantic import BaseModel, ConfigDict, Field
import structlog

T = TypeVar("T")


def current_request_id() -> str:
    """日志上下文中的请求 ID（由 LoggingMiddleware 绑定）"""
    return structlog.contextvars.get_contextvars().get("request_id") or f"req_{uuid.uuid4().hex[:12]}"


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str = Field(..., description="错误类型")
    detail: str = Field(..., description="错误详细说明")
    field: Optional[str] = Field(None, description="相关字段")


class APIResponse(BaseModel, Generic[T]):
    """
    统一 API 响应格式

    成功响应:
    {
        "success": true,
        "code": 200,
        "message": "操作成功",
        "data": { ... },
        "timestamp": "2026-01-05T10:00:00Z",
        "request_id": "req_abc123"
    }

    错误响应:
    {
        "success": false,
        "code": 40401,
        "message": "资源未找到",
        "error": { ... },
        "timestamp": "2026-01-05T10:00:00Z",
        "request_id": "req_abc123"
    }
    """
    model_config = ConfigDict(json_encoders={datetime: lambda v: v.isoformat() + "Z"})

    success: bool = Field(True, description="请求是否成功")
    code: int = Field(200, description="响应码")
    message: str = Field("操作成功", description="响应消息")
    data: Optional[T] = Field(None, description="响应数据")
    error: Optional[ErrorDetail] = Field(None, description="错误详情")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="响应时间")
    request_id: str = Field(default_factory=current_request_id, description="请求 ID")


class PaginationInfo(BaseModel):
    """分页信息"""
    page: int = Field(..., description="当前页码")
    page_size: int = Field(..., description="每页数量")
    total_items: int = Field(..., description="总条目数")
    total_pages: int = Field(..., description="总页数")

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "PaginationInfo":
        return cls(
            page=page,
            page_size=page_size,
            total_items=total,
            total_pages=math.ceil(total / page_size) if total else 0,
        )


def success_response(
    data: Any = None,
    message: str = "操作成功",
    code: int = 200,
) -> dict:
    """构建成功响应"""
    return {
        "success": True,
        "code": code,
        "message": message,
        "data": data,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "request_id": current_request_id(),
    }


def error_response(
    message: str,
    code: int,
    error_type: str = "Error",
    detail: str = "",
    field: Optional[str] = None,
) -> dict:
    """构建错误响应"""
    return {
        "success": False,
        "code": code,
        "message": message,
        "error": {
            "type": error_type,
            "detail": detail,
            "field": field,
        },
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "request_id": current_request_id(),
    }
