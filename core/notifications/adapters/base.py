"""
渠道适配器基类

所有 HTTP 类适配器共享同一套失败分类:
- 5xx / 429 / 超时 / 连接错误 -> 可重试
- 其它 4xx -> 永久失败
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any

import httpx
import structlog

from core.config import NotificationSettings
from db.models import Alert
from ..config import ChannelConfig
from ..templates import Template

logger = structlog.get_logger(__name__)

SEVERITY_COLORS = {
    "low": "#36a2eb",
    "medium": "#ffce56",
    "high": "#ff6384",
    "critical": "#dc3545",
}
DEFAULT_COLOR = "#6c757d"


def severity_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, DEFAULT_COLOR)


def is_retryable_status(status_code: int) -> bool:
    """5xx 与 429 可重试"""
    return status_code >= 500 or status_code == 429


@dataclass
class DeliveryResult:
    """一次投递尝试的结果"""
    success: bool
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None
    should_retry: bool = False

    @classmethod
    def ok(cls, response: Optional[Dict[str, Any]] = None) -> "DeliveryResult":
        return cls(success=True, response=response)

    @classmethod
    def fail(cls, error: str, should_retry: bool = False) -> "DeliveryResult":
        return cls(success=False, error=error, should_retry=should_retry)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "response": self.response,
            "should_retry": self.should_retry,
        }


class ChannelAdapter(ABC):
    """
    渠道适配器

    Args:
        settings: 通知配置
        http_client: 可注入的 httpx.AsyncClient（测试中配合 MockTransport 使用）
    """

    channel_type: str = ""
    label: str = ""

    def __init__(
        self,
        settings: NotificationSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.http_client = http_client

    @abstractmethod
    async def send(
        self,
        alert: Alert,
        config: ChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        """发送通知"""

    async def _request(
        self,
        url: str,
        content: bytes,
        headers: Optional[Dict[str, str]] = None,
        method: str = "POST",
    ) -> DeliveryResult:
        """发送 JSON 请求并按状态码分类结果"""
        request_headers = {
            "Content-Type": "application/json",
            "User-Agent": self.settings.user_agent,
            **(headers or {}),
        }

        try:
            if self.http_client is not None:
                response = await self.http_client.request(
                    method, url, content=content, headers=request_headers,
                    timeout=self.settings.http_timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                    response = await client.request(method, url, content=content, headers=request_headers)
        except httpx.TimeoutException as e:
            logger.warning("notification_timeout", channel_type=self.channel_type, error=str(e))
            return DeliveryResult.fail(f"{self.label} request timed out: {e}", should_retry=True)
        except httpx.RequestError as e:
            logger.warning("notification_request_error", channel_type=self.channel_type, error=str(e))
            return DeliveryResult.fail(f"{self.label} request error: {e}", should_retry=True)

        if response.is_success:
            return DeliveryResult.ok({
                "status": response.status_code,
                "data": response.text[:1000] if response.text else None,
            })

        logger.warning(
            "notification_http_error",
            channel_type=self.channel_type,
            status=response.status_code,
        )
        return DeliveryResult.fail(
            f"{self.label} failed: HTTP {response.status_code} {response.reason_phrase}".rstrip(),
            should_retry=is_retryable_status(response.status_code),
        )
