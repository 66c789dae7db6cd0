"""
告警 CRUD 操作
"""
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from db.models import Alert, AlertDelivery


class AlertCRUD:
    """告警 CRUD 操作"""

    @staticmethod
    def create(
        db: Session,
        user_id: str,
        type: str,
        severity: str,
        title: str,
        message: str,
        provider_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Alert:
        """创建告警"""
        alert = Alert(
            user_id=user_id,
            provider_id=provider_id,
            type=type,
            severity=severity,
            title=title,
            message=message,
            metadata_=metadata or {},
        )

        db.add(alert)
        db.commit()
        db.refresh(alert)

        return alert

    @staticmethod
    def get_by_id(db: Session, alert_id: str, user_id: Optional[str] = None) -> Optional[Alert]:
        """根据 ID 获取告警，传入 user_id 时校验归属"""
        query = db.query(Alert).filter(Alert.id == alert_id)
        if user_id is not None:
            query = query.filter(Alert.user_id == user_id)
        return query.first()

    @staticmethod
    def find_duplicate(
        db: Session,
        user_id: str,
        provider_id: Optional[str],
        type: str,
        since: datetime,
    ) -> Optional[Alert]:
        """
        查找去重窗口内未解决的同类告警

        provider_id 为 None 时只匹配同样为 None 的告警
        """
        query = db.query(Alert).filter(
            Alert.user_id == user_id,
            Alert.type == type,
            Alert.is_resolved.is_(False),
            Alert.created_at >= since,
        )
        if provider_id is None:
            query = query.filter(Alert.provider_id.is_(None))
        else:
            query = query.filter(Alert.provider_id == provider_id)
        return query.first()

    @staticmethod
    def get_list(
        db: Session,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        provider_id: Optional[str] = None,
        type: Optional[str] = None,
        severity: Optional[str] = None,
        is_read: Optional[bool] = None,
        is_resolved: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Tuple[List[Alert], int]:
        """
        获取告警列表（按创建时间倒序）

        Returns:
            (告警列表, 总数)
        """
        query = db.query(Alert).filter(Alert.user_id == user_id)

        if provider_id:
            query = query.filter(Alert.provider_id == provider_id)
        if type:
            query = query.filter(Alert.type == type)
        if severity:
            query = query.filter(Alert.severity == severity)
        if is_read is not None:
            query = query.filter(Alert.is_read == is_read)
        if is_resolved is not None:
            query = query.filter(Alert.is_resolved == is_resolved)
        if start_date:
            query = query.filter(Alert.created_at >= start_date)
        if end_date:
            query = query.filter(Alert.created_at <= end_date)

        total = query.count()

        alerts = query.order_by(desc(Alert.created_at)) \
            .offset((page - 1) * page_size) \
            .limit(page_size) \
            .all()

        return alerts, total

    @staticmethod
    def mark_read(
        db: Session,
        user_id: str,
        alert_ids: Optional[List[str]] = None,
        provider_id: Optional[str] = None,
    ) -> int:
        """
        标记已读

        alert_ids 为 None 时标记该用户全部未读告警
        """
        query = db.query(Alert).filter(Alert.user_id == user_id, Alert.is_read.is_(False))
        if provider_id:
            query = query.filter(Alert.provider_id == provider_id)
        if alert_ids is not None:
            if not alert_ids:
                return 0
            query = query.filter(Alert.id.in_(alert_ids))

        updated = query.update({Alert.is_read: True}, synchronize_session="fetch")
        db.commit()
        return updated

    @staticmethod
    def resolve(db: Session, user_id: str, alert_ids: List[str], when: datetime) -> int:
        """解决告警（同时标记已读），只作用于未解决的告警"""
        if not alert_ids:
            return 0

        updated = db.query(Alert) \
            .filter(
                Alert.user_id == user_id,
                Alert.id.in_(alert_ids),
                Alert.is_resolved.is_(False),
            ) \
            .update(
                {Alert.is_resolved: True, Alert.resolved_at: when, Alert.is_read: True},
                synchronize_session="fetch",
            )
        db.commit()
        return updated

    @staticmethod
    def delete(db: Session, alert: Alert) -> None:
        """删除告警（级联删除投递记录）"""
        db.delete(alert)
        db.commit()

    @staticmethod
    def count(db: Session, user_id: str, **filters) -> int:
        """按条件计数，支持 is_read / is_resolved / since"""
        query = db.query(func.count(Alert.id)).filter(Alert.user_id == user_id)
        if "is_read" in filters:
            query = query.filter(Alert.is_read == filters["is_read"])
        if "is_resolved" in filters:
            query = query.filter(Alert.is_resolved == filters["is_resolved"])
        if "since" in filters:
            query = query.filter(Alert.created_at >= filters["since"])
        return query.scalar() or 0

    @staticmethod
    def count_by_field(db: Session, user_id: str, field: str) -> Dict[str, int]:
        """按 type / severity 分组统计"""
        column = getattr(Alert, field)
        results = db.query(column, func.count(Alert.id)) \
            .filter(Alert.user_id == user_id) \
            .group_by(column) \
            .all()

        return {value: count for value, count in results}

    @staticmethod
    def delete_resolved_before(db: Session, cutoff: datetime) -> int:
        """删除在 cutoff 之前已解决的告警及其投递记录"""
        alert_ids = [
            row[0] for row in db.query(Alert.id)
            .filter(Alert.is_resolved.is_(True), Alert.resolved_at <= cutoff)
            .all()
        ]
        if not alert_ids:
            return 0

        # 批量删除不走 ORM 级联，先删投递记录
        db.query(AlertDelivery) \
            .filter(AlertDelivery.alert_id.in_(alert_ids)) \
            .delete(synchronize_session="fetch")
        deleted = db.query(Alert) \
            .filter(Alert.id.in_(alert_ids)) \
            .delete(synchronize_session="fetch")
        db.commit()
        return deleted
