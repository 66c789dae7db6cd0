"""
后台任务调度模块
"""
from .job_lock import JobLock, LocalJobLock, RedisJobLock, create_job_lock
from .jobs import (
    BaseJob,
    JobResult,
    JobStatus,
    AlertEvaluationJob,
    HeuristicAlertJob,
    NotificationDeliveryJob,
    CleanupJob,
)
from .manager import JobManager, JobIntervals, get_job_manager

__all__ = [
    # 任务锁
    "JobLock",
    "LocalJobLock",
    "RedisJobLock",
    "create_job_lock",
    # 任务
    "BaseJob",
    "JobResult",
    "JobStatus",
    "AlertEvaluationJob",
    "HeuristicAlertJob",
    "NotificationDeliveryJob",
    "CleanupJob",
    # 管理器
    "JobManager",
    "JobIntervals",
    "get_job_manager",
]
