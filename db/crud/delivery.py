"""
投递记录 CRUD 操作
"""
from typing import Optional, List
from datetime import datetime

from sqlalchemy import and_, or_, desc
from sqlalchemy.orm import Session

from db.models import AlertDelivery, NotificationChannel, DeliveryStatus


class DeliveryCRUD:
    """投递记录 CRUD 操作"""

    @staticmethod
    def create(
        db: Session,
        alert_id: str,
        channel_id: str,
        max_attempts: int = 3,
    ) -> AlertDelivery:
        """创建待投递记录（attempt=1）"""
        delivery = AlertDelivery(
            alert_id=alert_id,
            channel_id=channel_id,
            status=DeliveryStatus.PENDING.value,
            attempt=1,
            max_attempts=max_attempts,
        )

        db.add(delivery)
        db.commit()
        db.refresh(delivery)

        return delivery

    @staticmethod
    def get_by_id(db: Session, delivery_id: str) -> Optional[AlertDelivery]:
        return db.query(AlertDelivery).filter(AlertDelivery.id == delivery_id).first()

    @staticmethod
    def get_due(db: Session, now: datetime, limit: int = 100) -> List[AlertDelivery]:
        """
        获取到期的投递

        pending，或 retrying 且 next_retry_at <= now；
        只包含启用且已验证的渠道，按创建时间排序
        """
        return db.query(AlertDelivery) \
            .join(NotificationChannel, AlertDelivery.channel_id == NotificationChannel.id) \
            .filter(
                or_(
                    AlertDelivery.status == DeliveryStatus.PENDING.value,
                    and_(
                        AlertDelivery.status == DeliveryStatus.RETRYING.value,
                        AlertDelivery.next_retry_at <= now,
                    ),
                ),
                NotificationChannel.is_active.is_(True),
                NotificationChannel.is_verified.is_(True),
            ) \
            .order_by(AlertDelivery.created_at) \
            .limit(limit) \
            .all()

    @staticmethod
    def get_retryable_failed(
        db: Session, channel_id: Optional[str] = None, limit: int = 50,
    ) -> List[AlertDelivery]:
        """获取还有剩余尝试次数的失败投递"""
        query = db.query(AlertDelivery).filter(
            AlertDelivery.status == DeliveryStatus.FAILED.value,
            AlertDelivery.attempt < AlertDelivery.max_attempts,
        )
        if channel_id:
            query = query.filter(AlertDelivery.channel_id == channel_id)

        return query.order_by(AlertDelivery.created_at).limit(limit).all()

    @staticmethod
    def get_history(
        db: Session,
        user_id: str,
        channel_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[AlertDelivery]:
        """获取用户的投递历史（按创建时间倒序）"""
        query = db.query(AlertDelivery) \
            .join(NotificationChannel, AlertDelivery.channel_id == NotificationChannel.id) \
            .filter(NotificationChannel.user_id == user_id)

        if channel_id:
            query = query.filter(AlertDelivery.channel_id == channel_id)
        if status:
            query = query.filter(AlertDelivery.status == status)
        if start_date:
            query = query.filter(AlertDelivery.created_at >= start_date)
        if end_date:
            query = query.filter(AlertDelivery.created_at <= end_date)

        return query.order_by(desc(AlertDelivery.created_at)).limit(limit).all()

    @staticmethod
    def delete_finished_before(db: Session, cutoff: datetime) -> int:
        """删除在 cutoff 之前结束（sent / failed）的投递"""
        deleted = db.query(AlertDelivery) \
            .filter(
                AlertDelivery.status.in_([DeliveryStatus.SENT.value, DeliveryStatus.FAILED.value]),
                AlertDelivery.updated_at <= cutoff,
            ) \
            .delete(synchronize_session="fetch")
        db.commit()
        return deleted
