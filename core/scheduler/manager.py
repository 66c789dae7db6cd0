"""
任务管理器

统一启动、停止和查询四个后台任务
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable

from sqlalchemy.orm import Session
import structlog

from core.config import Settings, get_settings
from core.exceptions import ResourceNotFoundError
from core.notifications import DeliveryDispatcher
from .job_lock import create_job_lock
from .jobs import (
    BaseJob,
    JobResult,
    JobStatus,
    AlertEvaluationJob,
    HeuristicAlertJob,
    NotificationDeliveryJob,
    CleanupJob,
)

logger = structlog.get_logger(__name__)


@dataclass
class JobIntervals:
    """各任务执行间隔（分钟）"""
    alert_evaluation: float = 1
    notification_delivery: float = 2
    cleanup: float = 24 * 60
    heuristic_alerts: float = 15

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobIntervals":
        cfg = settings.jobs
        return cls(
            alert_evaluation=cfg.alert_evaluation_minutes,
            notification_delivery=cfg.notification_delivery_minutes,
            cleanup=cfg.cleanup_hours * 60,
            heuristic_alerts=cfg.auto_alert_minutes,
        )


class JobManager:
    """任务管理器"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        settings: Optional[Settings] = None,
        dispatcher: Optional[DeliveryDispatcher] = None,
    ):
        self.settings = settings or get_settings()

        def build(job_cls):
            lock = create_job_lock(job_cls.name, self.settings.jobs.lock_backend, self.settings.redis.url)
            return job_cls(session_factory=session_factory, lock=lock, settings=self.settings, dispatcher=dispatcher)

        self.alert_evaluation: AlertEvaluationJob = build(AlertEvaluationJob)
        self.heuristic_alerts: HeuristicAlertJob = build(HeuristicAlertJob)
        self.notification_delivery: NotificationDeliveryJob = build(NotificationDeliveryJob)
        self.cleanup: CleanupJob = build(CleanupJob)

    @property
    def jobs(self) -> Dict[str, BaseJob]:
        return {
            job.name: job
            for job in (self.alert_evaluation, self.heuristic_alerts, self.notification_delivery, self.cleanup)
        }

    def get_job(self, name: str) -> BaseJob:
        """
        Raises:
            ResourceNotFoundError: 未知任务名
        """
        job = self.jobs.get(name)
        if job is None:
            raise ResourceNotFoundError("Job", name)
        return job

    def start_all(self, intervals: Optional[JobIntervals] = None) -> None:
        """启动全部任务（需在事件循环中调用）"""
        intervals = intervals or JobIntervals.from_settings(self.settings)
        for name, job in self.jobs.items():
            job.start_scheduler(getattr(intervals, name))
        logger.info("jobs_started", jobs=list(self.jobs))

    async def stop_all(self) -> None:
        for job in self.jobs.values():
            await job.stop_scheduler()
        logger.info("jobs_stopped")

    async def restart_job(self, name: str, interval_minutes: float) -> JobStatus:
        job = self.get_job(name)
        await job.stop_scheduler()
        job.start_scheduler(interval_minutes)
        logger.info("job_restarted", job=name, interval_minutes=interval_minutes)
        return job.get_status()

    def get_status(self) -> Dict[str, Any]:
        return {name: job.get_status().to_dict() for name, job in self.jobs.items()}

    async def run_job_once(self, name: str) -> JobResult:
        return await self.get_job(name).execute()


# 全局单例
_job_manager: Optional[JobManager] = None


def get_job_manager() -> JobManager:
    """获取任务管理器单例"""
    global _job_manager
    if _job_manager is None:
        _job_manager = JobManager()
    return _job_manager
