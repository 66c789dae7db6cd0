"""
通知渠道服务

渠道的增删改查、验证、健康重置、测试发送与投递历史
"""
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session
import structlog

from core.exceptions import ChannelConfigError, ResourceNotFoundError
from db.crud import ChannelCRUD, DeliveryCRUD
from db.models import Alert, AlertDelivery, NotificationChannel, ChannelType
from .adapters import DeliveryResult
from .config import parse_channel_config, dump_channel_config
from .dispatcher import DeliveryDispatcher
from .templates import TemplateStore

logger = structlog.get_logger(__name__)


class ChannelService:
    """通知渠道服务"""

    def __init__(self, db: Session, dispatcher: Optional[DeliveryDispatcher] = None):
        self.db = db
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> DeliveryDispatcher:
        if self._dispatcher is None:
            self._dispatcher = DeliveryDispatcher(templates=TemplateStore(self.db))
        return self._dispatcher

    def _get_owned(self, channel_id: str, user_id: str) -> NotificationChannel:
        channel = ChannelCRUD.get_by_id(self.db, channel_id, user_id=user_id)
        if channel is None:
            raise ResourceNotFoundError("Channel", channel_id)
        return channel

    def create_channel(
        self,
        user_id: str,
        name: str,
        type: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> NotificationChannel:
        """
        创建渠道

        in_app 渠道自动视为已验证

        Raises:
            ChannelConfigError: 类型或配置不合法
        """
        if not name or not name.strip():
            raise ChannelConfigError("Channel name is required")
        try:
            channel_type = ChannelType(type).value
        except ValueError:
            raise ChannelConfigError(f"Unsupported channel type: {type}")

        parsed = parse_channel_config(channel_type, config)
        channel = ChannelCRUD.create(
            self.db,
            user_id=user_id,
            name=name.strip(),
            type=channel_type,
            config=dump_channel_config(parsed),
            is_verified=channel_type == ChannelType.IN_APP.value,
        )
        logger.info("channel_created", channel_id=channel.id, user_id=user_id, channel_type=channel_type)
        return channel

    def list_channels(self, user_id: str) -> List[NotificationChannel]:
        return ChannelCRUD.get_by_user(self.db, user_id)

    def get_channel(self, channel_id: str, user_id: str) -> NotificationChannel:
        return self._get_owned(channel_id, user_id)

    def update_channel(self, channel_id: str, user_id: str, fields: Dict[str, Any]) -> NotificationChannel:
        """更新名称 / 配置 / 启用状态；配置会重新校验"""
        channel = self._get_owned(channel_id, user_id)
        updates: Dict[str, Any] = {}

        if fields.get("name") is not None:
            if not str(fields["name"]).strip():
                raise ChannelConfigError("Channel name is required")
            updates["name"] = str(fields["name"]).strip()
        if fields.get("config") is not None:
            updates["config"] = dump_channel_config(parse_channel_config(channel.type, fields["config"]))
        if fields.get("is_active") is not None:
            updates["is_active"] = bool(fields["is_active"])

        channel = ChannelCRUD.update(self.db, channel, updates)
        logger.info("channel_updated", channel_id=channel_id, fields=sorted(updates))
        return channel

    def delete_channel(self, channel_id: str, user_id: str) -> None:
        channel = self._get_owned(channel_id, user_id)
        ChannelCRUD.delete(self.db, channel)
        logger.info("channel_deleted", channel_id=channel_id, user_id=user_id)

    def verify_channel(self, channel_id: str, user_id: str) -> NotificationChannel:
        channel = self._get_owned(channel_id, user_id)
        channel = ChannelCRUD.update(self.db, channel, {"is_verified": True})
        logger.info("channel_verified", channel_id=channel_id)
        return channel

    def reset_health(self, channel_id: str, user_id: str) -> NotificationChannel:
        """清零 failure_count，使被停用的渠道重新参与路由"""
        channel = self._get_owned(channel_id, user_id)
        channel = ChannelCRUD.update(self.db, channel, {"failure_count": 0})
        logger.info("channel_health_reset", channel_id=channel_id)
        return channel

    async def test_channel(self, channel_id: str, user_id: str) -> DeliveryResult:
        """发送一条测试通知，不记录投递"""
        channel = self._get_owned(channel_id, user_id)
        test_alert = Alert(
            id="test",
            user_id=user_id,
            provider_id=None,
            type="test",
            severity="low",
            title="Test Notification",
            message="This is a test notification from Nexus Dashboard",
            metadata_={},
            is_read=False,
            is_resolved=False,
            created_at=datetime.utcnow(),
        )
        result = await self.dispatcher.deliver(test_alert, channel)
        logger.info("channel_tested", channel_id=channel_id, success=result.success)
        return result

    def delivery_history(
        self,
        user_id: str,
        channel_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[AlertDelivery]:
        return DeliveryCRUD.get_history(
            self.db,
            user_id=user_id,
            channel_id=channel_id,
            status=status,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
