"""
告警周期任务

每个 Celery 任务执行一次对应 Job 的 execute()，互斥锁使用 Redis
"""
import asyncio
from typing import Dict, Any, Type

from celery import shared_task
import structlog

from core.config import get_settings
from core.scheduler import (
    BaseJob,
    AlertEvaluationJob,
    HeuristicAlertJob,
    NotificationDeliveryJob,
    CleanupJob,
    create_job_lock,
)

logger = structlog.get_logger(__name__)


def run_job(job_cls: Type[BaseJob]) -> Dict[str, Any]:
    """在新的事件循环中执行一次任务"""
    settings = get_settings()
    lock = create_job_lock(job_cls.name, "redis", settings.redis.url)
    job = job_cls(lock=lock, settings=settings)

    result = asyncio.run(job.execute())
    if result.errors and not result.skipped:
        logger.warning("celery_job_errors", job=job_cls.name, errors=result.errors[:10])
    return result.to_dict()


@shared_task(name="workers.tasks.alerting.evaluate_alert_rules")
def evaluate_alert_rules():
    """评估所有启用的规则"""
    return run_job(AlertEvaluationJob)


@shared_task(name="workers.tasks.alerting.generate_heuristic_alerts")
def generate_heuristic_alerts():
    """启发式告警检测"""
    return run_job(HeuristicAlertJob)


@shared_task(name="workers.tasks.alerting.deliver_notifications")
def deliver_notifications():
    """处理一批到期投递"""
    return run_job(NotificationDeliveryJob)


@shared_task(name="workers.tasks.alerting.cleanup")
def cleanup():
    """清理过期数据"""
    return run_job(CleanupJob)
