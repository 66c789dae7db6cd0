"""
Celery 应用配置

beat 按固定间隔触发四个后台任务；每次执行通过 Redis 锁互斥，
多个 worker 同时收到同一任务时只有一个真正执行
"""
from celery import Celery
from kombu import Queue, Exchange
import structlog

from core.config import get_settings

settings = get_settings()

# 创建 Celery 应用
celery_app = Celery(
    "nexus_alert_workers",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=["workers.tasks.alerting"],
)

default_exchange = Exchange("alerts", type="direct")

task_queues = [
    Queue("evaluation", default_exchange, routing_key="evaluation"),
    Queue("delivery", default_exchange, routing_key="delivery"),
    Queue("maintenance", default_exchange, routing_key="maintenance"),
]

# Celery 配置
celery_app.conf.update(
    # 任务序列化
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # 时区
    timezone="UTC",
    enable_utc=True,

    # 任务超时
    task_soft_time_limit=settings.celery.task_soft_timeout,
    task_time_limit=settings.celery.task_hard_timeout,

    # 周期任务不需要预取
    worker_prefetch_multiplier=1,

    # 结果过期
    result_expires=86400,

    # 任务队列
    task_queues=task_queues,
    task_default_queue="evaluation",
    task_default_exchange="alerts",
    task_default_routing_key="evaluation",
    task_routes={
        "workers.tasks.alerting.evaluate_alert_rules": {"queue": "evaluation"},
        "workers.tasks.alerting.generate_heuristic_alerts": {"queue": "evaluation"},
        "workers.tasks.alerting.deliver_notifications": {"queue": "delivery"},
        "workers.tasks.alerting.cleanup": {"queue": "maintenance"},
    },
)

jobs = settings.jobs

# 定时任务（间隔与进程内调度一致）
celery_app.conf.beat_schedule = {
    "evaluate-alert-rules": {
        "task": "workers.tasks.alerting.evaluate_alert_rules",
        "schedule": jobs.alert_evaluation_minutes * 60,
    },
    "deliver-notifications": {
        "task": "workers.tasks.alerting.deliver_notifications",
        "schedule": jobs.notification_delivery_minutes * 60,
    },
    "generate-heuristic-alerts": {
        "task": "workers.tasks.alerting.generate_heuristic_alerts",
        "schedule": jobs.auto_alert_minutes * 60,
    },
    "cleanup": {
        "task": "workers.tasks.alerting.cleanup",
        "schedule": jobs.cleanup_hours * 3600,
    },
}


@celery_app.on_after_configure.connect
def setup_worker_signals(sender, **kwargs):
    """配置 Worker 信号"""
    from celery.signals import worker_ready, worker_shutdown

    logger = structlog.get_logger(__name__)

    @worker_ready.connect
    def on_worker_ready(sender, **kwargs):
        logger.info("worker_ready", hostname=getattr(sender, "hostname", "unknown"))

    @worker_shutdown.connect
    def on_worker_shutdown(sender, **kwargs):
        logger.info("worker_shutdown", hostname=getattr(sender, "hostname", "unknown"))
