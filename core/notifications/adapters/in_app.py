"""
站内通知适配器

告警记录本身就是站内通知，无需网络调用
"""
from typing import Dict, Any

from db.models import Alert, ChannelType
from ..config import InAppChannelConfig
from ..templates import Template
from .base import ChannelAdapter, DeliveryResult


class InAppAdapter(ChannelAdapter):
    channel_type = ChannelType.IN_APP.value
    label = "In-app"

    async def send(
        self,
        alert: Alert,
        config: InAppChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        return DeliveryResult.ok({"delivered": "in_app", "alert_id": alert.id})
