"""
投递分发器

按渠道类型选择适配器，完成配置解析、模板查找、变量构建与发送
"""
from typing import Optional, Dict, Type

import httpx
import structlog

from core.config import NotificationSettings, get_settings
from core.exceptions import ChannelConfigError
from db.models import Alert, NotificationChannel
from .adapters import ADAPTERS, ChannelAdapter, DeliveryResult
from .config import parse_channel_config
from .templates import TemplateStore, build_variables

logger = structlog.get_logger(__name__)


class DeliveryDispatcher:
    """
    投递分发器

    deliver() 从不抛出异常：配置错误为永久失败，未预期的异常按可重试失败处理
    """

    def __init__(
        self,
        templates: Optional[TemplateStore] = None,
        settings: Optional[NotificationSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        adapters: Optional[Dict[str, Type[ChannelAdapter]]] = None,
    ):
        self.settings = settings or get_settings().notifications
        self.templates = templates or TemplateStore()
        self._adapters: Dict[str, ChannelAdapter] = {
            channel_type: adapter_cls(self.settings, http_client=http_client)
            for channel_type, adapter_cls in (adapters or ADAPTERS).items()
        }

    def get_adapter(self, channel_type: str) -> Optional[ChannelAdapter]:
        return self._adapters.get(channel_type)

    async def deliver(self, alert: Alert, channel: NotificationChannel) -> DeliveryResult:
        """
        投递一条告警到一个渠道

        Returns:
            DeliveryResult(success, error, response, should_retry)
        """
        adapter = self.get_adapter(channel.type)
        if adapter is None:
            return DeliveryResult.fail(f"Unsupported channel type: {channel.type}", should_retry=False)

        try:
            config = parse_channel_config(channel.type, channel.config)
        except ChannelConfigError as e:
            logger.warning("channel_config_invalid", channel_id=channel.id, error=str(e))
            return DeliveryResult.fail(f"Invalid channel config: {e}", should_retry=False)

        template = self.templates.get_template(channel.type, alert.type, alert.severity)
        variables = build_variables(alert, self.settings.dashboard_url)

        try:
            result = await adapter.send(alert, config, variables, template)
        except Exception as e:
            logger.error(
                "notification_unexpected_error",
                alert_id=alert.id,
                channel_id=channel.id,
                channel_type=channel.type,
                error=str(e),
            )
            return DeliveryResult.fail(f"Unexpected error: {e}", should_retry=True)

        logger.info(
            "notification_attempted",
            alert_id=alert.id,
            channel_id=channel.id,
            channel_type=channel.type,
            success=result.success,
            should_retry=result.should_retry,
            error=result.error,
        )
        return result
