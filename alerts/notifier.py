"""
告警通知器

为告警创建投递记录并驱动投递状态机:
- 按路由结果为每个渠道创建 pending 投递并立即尝试
- 成功/失败更新渠道健康度
- 可重试失败按退避安排重试，否则进入 failed
"""
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy.orm import Session
import structlog

from core.config import NotificationSettings, get_settings
from core.notifications import (
    DeliveryDispatcher,
    DeliveryLifecycle,
    DeliveryResult,
    NotificationRouter,
    TemplateStore,
)
from db.crud import DeliveryCRUD
from db.models import Alert, AlertDelivery, DeliveryStatus

logger = structlog.get_logger(__name__)


class AlertNotifier:
    """告警通知器"""

    def __init__(
        self,
        db: Session,
        router: Optional[NotificationRouter] = None,
        dispatcher: Optional[DeliveryDispatcher] = None,
        settings: Optional[NotificationSettings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings().notifications
        self.router = router or NotificationRouter(db, self.settings.channel_failure_threshold)
        self.dispatcher = dispatcher or DeliveryDispatcher(
            templates=TemplateStore(db), settings=self.settings,
        )

    async def notify(self, alert: Alert) -> List[AlertDelivery]:
        """
        通知一条告警

        Returns:
            本次创建的投递记录（已尝试过一次）
        """
        channels = self.router.resolve_channels(alert.user_id, alert.type, alert.severity)
        if not channels:
            logger.info("alert_no_channels", alert_id=alert.id, user_id=alert.user_id)
            return []

        deliveries = [
            DeliveryCRUD.create(self.db, alert.id, channel.id, max_attempts=self.settings.max_attempts)
            for channel in channels
        ]
        for delivery in deliveries:
            await self.process_delivery(delivery)

        logger.info(
            "alert_notified",
            alert_id=alert.id,
            deliveries=len(deliveries),
            sent=sum(1 for d in deliveries if d.status == DeliveryStatus.SENT.value),
        )
        return deliveries

    async def process_delivery(
        self,
        delivery: AlertDelivery,
        now: Optional[datetime] = None,
    ) -> DeliveryResult:
        """
        尝试一次投递并提交状态转换

        Raises:
            InvalidTransitionError: 投递已处于终态
        """
        channel = delivery.channel
        result = await self.dispatcher.deliver(delivery.alert, channel)
        now = now or datetime.utcnow()

        if result.success:
            DeliveryLifecycle.mark_sent(delivery, result.response, now)
            channel.failure_count = 0
            channel.last_used = now
            logger.info("delivery_sent", delivery_id=delivery.id, channel_id=channel.id, attempt=delivery.attempt)
        else:
            channel.failure_count = (channel.failure_count or 0) + 1
            if result.should_retry and delivery.attempt < delivery.max_attempts:
                DeliveryLifecycle.schedule_retry(delivery, result.error, now)
                logger.warning(
                    "delivery_retry_scheduled",
                    delivery_id=delivery.id,
                    channel_id=channel.id,
                    attempt=delivery.attempt,
                    next_retry_at=delivery.next_retry_at.isoformat(),
                    error=result.error,
                )
            else:
                DeliveryLifecycle.mark_failed(delivery, result.error)
                logger.warning(
                    "delivery_failed",
                    delivery_id=delivery.id,
                    channel_id=channel.id,
                    attempt=delivery.attempt,
                    error=result.error,
                )

        self.db.commit()
        return result

    async def process_due(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[AlertDelivery]:
        """处理一批到期投递，返回本批处理过的记录"""
        now = now or datetime.utcnow()
        batch = DeliveryCRUD.get_due(self.db, now, limit=limit or self.settings.batch_size)
        for delivery in batch:
            await self.process_delivery(delivery, now=now)
        return batch

    def retry_failed_deliveries(
        self,
        channel_id: Optional[str] = None,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> int:
        """
        手动重试失败投递

        仍有剩余尝试次数的 failed 投递改为 retrying，下一轮投递立即拾取
        """
        now = now or datetime.utcnow()
        failed = DeliveryCRUD.get_retryable_failed(self.db, channel_id=channel_id, limit=limit)
        for delivery in failed:
            DeliveryLifecycle.schedule_retry(delivery, delivery.error, now, delay=timedelta(0))
        self.db.commit()

        logger.info("deliveries_requeued", count=len(failed), channel_id=channel_id)
        return len(failed)

    def cleanup_old_deliveries(self, retention_days: int = 30) -> int:
        """删除超过保留期的已结束投递"""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        deleted = DeliveryCRUD.delete_finished_before(self.db, cutoff)
        logger.info("deliveries_cleaned_up", deleted=deleted, retention_days=retention_days)
        return deleted
