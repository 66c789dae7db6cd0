"""
通知路由

根据用户偏好决定告警投递到哪些渠道
"""
from typing import Optional, List

from sqlalchemy.orm import Session
import structlog

from core.config import get_settings
from core.exceptions import ResourceNotFoundError, RuleValidationError
from db.crud import ChannelCRUD, PreferenceCRUD
from db.models import (
    NotificationChannel, UserNotificationPreference,
    AlertType, AlertSeverity, ChannelType,
)

logger = structlog.get_logger(__name__)

# 未配置偏好时 medium / low 告警的默认渠道
LOW_SEVERITY_CHANNELS = [ChannelType.EMAIL.value, ChannelType.IN_APP.value]
HIGH_SEVERITIES = {AlertSeverity.CRITICAL.value, AlertSeverity.HIGH.value}


class NotificationRouter:
    """
    通知路由

    规则:
    1. 存在 (告警类型, 级别) 的启用偏好时，只投递到这些偏好指定的渠道
    2. 否则 critical / high 投递到全部渠道，medium / low 只投递到 email 和 in_app
    3. 无论哪种情况，只返回启用、已验证且 failure_count 低于阈值的渠道
    """

    def __init__(self, db: Session, failure_threshold: Optional[int] = None):
        self.db = db
        if failure_threshold is None:
            failure_threshold = get_settings().notifications.channel_failure_threshold
        self.failure_threshold = failure_threshold

    def resolve_channels(self, user_id: str, alert_type: str, severity: str) -> List[NotificationChannel]:
        """获取告警应投递的渠道（按渠道创建时间排序）"""
        preferences = PreferenceCRUD.get_enabled(self.db, user_id, alert_type, severity)

        if preferences:
            channels = ChannelCRUD.get_deliverable(
                self.db, user_id, self.failure_threshold,
                channel_ids=[p.channel_id for p in preferences],
            )
            source = "preferences"
        else:
            channel_types = None if severity in HIGH_SEVERITIES else LOW_SEVERITY_CHANNELS
            channels = ChannelCRUD.get_deliverable(
                self.db, user_id, self.failure_threshold, channel_types=channel_types,
            )
            source = "defaults"

        logger.debug(
            "notification_channels_resolved",
            user_id=user_id,
            alert_type=alert_type,
            severity=severity,
            source=source,
            channels=[c.id for c in channels],
        )
        return channels

    # ===== 偏好管理 =====

    def set_preference(
        self,
        user_id: str,
        alert_type: str,
        severity: str,
        channel_id: str,
        is_enabled: bool = True,
    ) -> UserNotificationPreference:
        """
        设置偏好

        Raises:
            RuleValidationError: 告警类型或级别不合法
            ResourceNotFoundError: 渠道不存在或不属于该用户
        """
        try:
            alert_type = AlertType(alert_type).value
            severity = AlertSeverity(severity).value
        except ValueError as e:
            raise RuleValidationError(str(e)) from e

        if ChannelCRUD.get_by_id(self.db, channel_id, user_id=user_id) is None:
            raise ResourceNotFoundError("Channel", channel_id)

        pref = PreferenceCRUD.upsert(
            self.db, user_id, alert_type, severity, channel_id, is_enabled=is_enabled,
        )
        logger.info(
            "notification_preference_set",
            user_id=user_id,
            alert_type=alert_type,
            severity=severity,
            channel_id=channel_id,
            is_enabled=is_enabled,
        )
        return pref

    def list_preferences(self, user_id: str) -> List[UserNotificationPreference]:
        return PreferenceCRUD.get_by_user(self.db, user_id)

    def delete_preference(self, pref_id: str, user_id: str) -> bool:
        pref = PreferenceCRUD.get_by_id(self.db, pref_id, user_id=user_id)
        if pref is None:
            return False
        PreferenceCRUD.delete(self.db, pref)
        return True
