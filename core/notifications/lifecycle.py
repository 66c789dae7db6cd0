"""
投递生命周期

处理投递状态转换、校验与重试退避
"""
from datetime import datetime, timedelta
from typing import Optional, Set, Dict

import structlog

from core.exceptions import InvalidTransitionError
from db.models import AlertDelivery, DeliveryStatus

logger = structlog.get_logger(__name__)

# 退避: 5 * 3^(attempt-1) 分钟，即 5, 15, 45 ...
BACKOFF_BASE_MINUTES = 5
BACKOFF_FACTOR = 3


def backoff(attempt: int) -> timedelta:
    """第 attempt 次尝试失败后的重试等待时间"""
    return timedelta(minutes=BACKOFF_BASE_MINUTES * BACKOFF_FACTOR ** (max(attempt, 1) - 1))


class DeliveryLifecycle:
    """
    投递生命周期管理器

    pending  -> sent | retrying | failed
    retrying -> sent | retrying | failed
    failed   -> retrying（仅手动重试，且 attempt < max_attempts）
    sent 为终态
    """

    VALID_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
        DeliveryStatus.PENDING: {DeliveryStatus.SENT, DeliveryStatus.RETRYING, DeliveryStatus.FAILED},
        DeliveryStatus.RETRYING: {DeliveryStatus.SENT, DeliveryStatus.RETRYING, DeliveryStatus.FAILED},
        DeliveryStatus.SENT: set(),    # 终态
        DeliveryStatus.FAILED: {DeliveryStatus.RETRYING},
    }

    # 可被投递任务拾取的状态
    ACTIVE_STATES: Set[DeliveryStatus] = {
        DeliveryStatus.PENDING,
        DeliveryStatus.RETRYING,
    }

    @classmethod
    def can_transition(cls, from_state: DeliveryStatus, to_state: DeliveryStatus) -> bool:
        """检查状态转换是否有效"""
        return to_state in cls.VALID_TRANSITIONS.get(from_state, set())

    @classmethod
    def validate_transition(
        cls,
        from_state: DeliveryStatus,
        to_state: DeliveryStatus,
        raise_error: bool = True,
    ) -> bool:
        """
        验证状态转换

        Raises:
            InvalidTransitionError: 转换无效且 raise_error=True
        """
        if cls.can_transition(from_state, to_state):
            return True

        if raise_error:
            raise InvalidTransitionError(from_state.value, to_state.value)
        return False

    @classmethod
    def is_terminal(cls, delivery: AlertDelivery) -> bool:
        """sent，或尝试次数已用尽的 failed"""
        status = DeliveryStatus(delivery.status)
        if status == DeliveryStatus.SENT:
            return True
        return status == DeliveryStatus.FAILED and delivery.attempt >= delivery.max_attempts

    @classmethod
    def _move(cls, delivery: AlertDelivery, to_state: DeliveryStatus) -> None:
        cls.validate_transition(DeliveryStatus(delivery.status), to_state)
        delivery.status = to_state.value
        delivery.updated_at = datetime.utcnow()

    @classmethod
    def mark_sent(cls, delivery: AlertDelivery, response: Optional[dict], now: datetime) -> None:
        cls._move(delivery, DeliveryStatus.SENT)
        delivery.sent_at = now
        delivery.response = response
        delivery.error = None
        delivery.next_retry_at = None

    @classmethod
    def mark_failed(cls, delivery: AlertDelivery, error: Optional[str]) -> None:
        cls._move(delivery, DeliveryStatus.FAILED)
        delivery.error = error
        delivery.next_retry_at = None

    @classmethod
    def schedule_retry(
        cls,
        delivery: AlertDelivery,
        error: Optional[str],
        now: datetime,
        delay: Optional[timedelta] = None,
    ) -> None:
        """
        安排重试

        next_retry_at = now + backoff(attempt)，attempt 加一

        Raises:
            InvalidTransitionError: 尝试次数已用尽
        """
        if delivery.attempt >= delivery.max_attempts:
            raise InvalidTransitionError(delivery.status, DeliveryStatus.RETRYING.value)
        cls._move(delivery, DeliveryStatus.RETRYING)
        delivery.error = error
        delivery.next_retry_at = now + (delay if delay is not None else backoff(delivery.attempt))
        delivery.attempt += 1
