"""
告警管理器

负责告警的创建（含去重）、查询与状态变更
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List, Tuple

from sqlalchemy.orm import Session
import structlog

from core.config import get_settings
from core.exceptions import ProviderNotFoundError
from db.crud import AlertCRUD
from db.models import Alert, ApiProvider, AlertType, AlertSeverity

logger = structlog.get_logger(__name__)


@dataclass
class AlertData:
    """新建告警的数据"""
    user_id: str
    type: str
    severity: str
    title: str
    message: str
    provider_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class AlertManager:
    """
    告警管理器

    功能:
    - 创建告警（24 小时去重）
    - 查询 / 过滤 / 分页
    - 已读、解决、删除
    - 统计与过期清理

    面向用户的操作都按 user_id 校验归属，不属于该用户的告警视为不存在
    """

    def __init__(self, db: Session, dedup_window_hours: Optional[int] = None):
        self.db = db
        if dedup_window_hours is None:
            dedup_window_hours = get_settings().alerting.dedup_window_hours
        self.dedup_window = timedelta(hours=dedup_window_hours)

    def _ensure_provider(self, provider_id: Optional[str]) -> None:
        if provider_id is None:
            return
        exists = self.db.query(ApiProvider.id).filter(ApiProvider.id == provider_id).first()
        if exists is None:
            raise ProviderNotFoundError(provider_id)

    def create(self, data: AlertData, now: Optional[datetime] = None) -> Optional[Alert]:
        """
        创建告警

        去重窗口内已存在同一 (用户, 提供方, 类型) 的未解决告警时不再创建

        Returns:
            新建的告警；被去重时返回 None

        Raises:
            ProviderNotFoundError: provider_id 不存在
        """
        now = now or datetime.utcnow()
        self._ensure_provider(data.provider_id)

        duplicate = AlertCRUD.find_duplicate(
            self.db,
            user_id=data.user_id,
            provider_id=data.provider_id,
            type=data.type,
            since=now - self.dedup_window,
        )
        if duplicate is not None:
            logger.info(
                "alert_deduplicated",
                user_id=data.user_id,
                provider_id=data.provider_id,
                alert_type=data.type,
                existing_alert_id=duplicate.id,
            )
            return None

        alert = AlertCRUD.create(
            self.db,
            user_id=data.user_id,
            provider_id=data.provider_id,
            type=data.type,
            severity=data.severity,
            title=data.title,
            message=data.message,
            metadata=data.metadata,
        )

        logger.info(
            "alert_created",
            alert_id=alert.id,
            user_id=alert.user_id,
            provider_id=alert.provider_id,
            alert_type=alert.type,
            severity=alert.severity,
        )
        return alert

    def get_alert(self, alert_id: str, user_id: str) -> Optional[Alert]:
        """获取告警"""
        return AlertCRUD.get_by_id(self.db, alert_id, user_id=user_id)

    def list_alerts(self, user_id: str, page: int = 1, page_size: int = 20, **filters) -> Tuple[List[Alert], int]:
        """
        告警列表（最新在前）

        filters: provider_id, type, severity, is_read, is_resolved, start_date, end_date
        """
        return AlertCRUD.get_list(self.db, user_id=user_id, page=page, page_size=page_size, **filters)

    def mark_as_read(self, alert_id: str, user_id: str) -> bool:
        alert = self.get_alert(alert_id, user_id)
        if alert is None:
            return False
        if not alert.is_read:
            alert.is_read = True
            self.db.commit()
        return True

    def mark_multiple_as_read(self, alert_ids: List[str], user_id: str) -> int:
        return AlertCRUD.mark_read(self.db, user_id, alert_ids=alert_ids)

    def mark_all_as_read(self, user_id: str, provider_id: Optional[str] = None) -> int:
        return AlertCRUD.mark_read(self.db, user_id, provider_id=provider_id)

    def resolve(self, alert_id: str, user_id: str) -> bool:
        """
        解决告警

        只作用于未解决的告警，同时标记已读

        Returns:
            是否发生了状态变更
        """
        resolved = AlertCRUD.resolve(self.db, user_id, [alert_id], datetime.utcnow()) > 0
        if resolved:
            logger.info("alert_resolved", alert_id=alert_id, user_id=user_id)
        return resolved

    def bulk_resolve(self, alert_ids: List[str], user_id: str) -> int:
        count = AlertCRUD.resolve(self.db, user_id, alert_ids, datetime.utcnow())
        logger.info("alerts_bulk_resolved", user_id=user_id, requested=len(alert_ids), resolved=count)
        return count

    def delete_alert(self, alert_id: str, user_id: str) -> bool:
        alert = self.get_alert(alert_id, user_id)
        if alert is None:
            return False
        AlertCRUD.delete(self.db, alert)
        logger.info("alert_deleted", alert_id=alert_id, user_id=user_id)
        return True

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        """
        告警统计

        Returns:
            total / unread / unresolved / recent_count（最近 24 小时）/ by_type / by_severity
        """
        by_type = {t.value: 0 for t in AlertType}
        by_type.update(AlertCRUD.count_by_field(self.db, user_id, "type"))
        by_severity = {s.value: 0 for s in AlertSeverity}
        by_severity.update(AlertCRUD.count_by_field(self.db, user_id, "severity"))

        return {
            "total": AlertCRUD.count(self.db, user_id),
            "unread": AlertCRUD.count(self.db, user_id, is_read=False),
            "unresolved": AlertCRUD.count(self.db, user_id, is_resolved=False),
            "recent_count": AlertCRUD.count(
                self.db, user_id, since=datetime.utcnow() - timedelta(hours=24),
            ),
            "by_type": by_type,
            "by_severity": by_severity,
        }

    def cleanup_old_alerts(self, retention_days: int = 30) -> int:
        """删除解决时间早于保留期的告警"""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        deleted = AlertCRUD.delete_resolved_before(self.db, cutoff)
        logger.info("old_alerts_cleaned", deleted=deleted, retention_days=retention_days)
        return deleted
