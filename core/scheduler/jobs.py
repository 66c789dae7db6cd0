"""
后台任务

四个周期任务:
- AlertEvaluationJob: 评估所有启用的规则，并为新告警发送通知
- HeuristicAlertJob: 对有指标或预算的用户执行启发式检测
- NotificationDeliveryJob: 处理一批到期投递
- CleanupJob: 清理过期告警、停用规则和投递记录

每个任务自带互斥锁，并发调用直接返回 skipped 结果。
"""
import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Callable

from sqlalchemy.orm import Session
import structlog

from alerts import AlertManager, AlertNotifier, AlertRuleEngine, HeuristicChecker, MetricsAggregator, BudgetStore
from core.config import Settings, get_settings
from core.notifications import DeliveryDispatcher
from db import get_session_factory
from db.crud import AlertCRUD, AlertRuleCRUD, DeliveryCRUD
from db.models import DeliveryStatus
from .job_lock import JobLock, LocalJobLock

logger = structlog.get_logger(__name__)


@dataclass
class JobResult:
    """单次任务执行结果"""
    job: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    alerts_created: int = 0
    details: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    skipped: bool = False
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retried": self.retried,
            "alerts_created": self.alerts_created,
            "details": self.details,
            "errors": self.errors,
            "skipped": self.skipped,
            "execution_time_ms": round(self.execution_time_ms, 2),
        }


@dataclass
class JobStatus:
    name: str
    is_running: bool
    last_run: Optional[datetime]
    scheduled: bool
    interval_minutes: Optional[float] = None
    last_result: Optional[JobResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_running": self.is_running,
            "last_run": self.last_run.isoformat() + "Z" if self.last_run else None,
            "scheduled": self.scheduled,
            "interval_minutes": self.interval_minutes,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


class BaseJob(ABC):
    """
    任务基类

    子类实现 run(db, result)；execute() 负责加锁、会话、计时和日志
    """

    name = "job"

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        lock: Optional[JobLock] = None,
        settings: Optional[Settings] = None,
        dispatcher: Optional[DeliveryDispatcher] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.lock = lock or LocalJobLock(self.name)
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._interval_minutes: Optional[float] = None
        self._last_run: Optional[datetime] = None
        self._last_result: Optional[JobResult] = None

    @abstractmethod
    async def run(self, db: Session, result: JobResult) -> None:
        """执行任务主体，单条失败写入 result.errors 而不中断"""

    def _notifier(self, db: Session) -> AlertNotifier:
        return AlertNotifier(db, dispatcher=self.dispatcher, settings=self.settings.notifications)

    async def execute(self) -> JobResult:
        """执行一次任务"""
        if not self.lock.acquire():
            logger.info("job_skipped", job=self.name, reason="already_running")
            return JobResult(job=self.name, skipped=True, errors=[f"{self.name} is already running"])

        result = JobResult(job=self.name)
        started = time.perf_counter()
        db = self.session_factory()
        try:
            await self.run(db, result)
        except Exception as e:
            db.rollback()
            result.errors.append(str(e))
            logger.error("job_failed", job=self.name, error=str(e), exc_info=True)
        finally:
            db.close()
            self.lock.release()

        result.execution_time_ms = (time.perf_counter() - started) * 1000
        self._last_run = datetime.utcnow()
        self._last_result = result

        logger.info(
            "job_completed",
            job=self.name,
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            retried=result.retried,
            errors=len(result.errors),
            execution_time_ms=round(result.execution_time_ms, 2),
        )
        return result

    # ===== 调度 =====

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_scheduler(self, interval_minutes: float) -> asyncio.Task:
        """按固定间隔循环执行，立即执行第一次"""
        if self.is_scheduled:
            logger.warning("job_already_scheduled", job=self.name)
            return self._task

        self._interval_minutes = interval_minutes
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval_minutes * 60, self._stop_event))
        logger.info("job_scheduled", job=self.name, interval_minutes=interval_minutes)
        return self._task

    async def stop_scheduler(self, handle: Optional[asyncio.Task] = None) -> None:
        """
        停止循环

        不再调度新的执行；正在进行的执行会跑完并记录结果
        """
        task = handle or self._task
        if task is None:
            return

        if task is self._task and self._stop_event is not None:
            self._stop_event.set()
        else:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        if task is self._task:
            self._task = None
            self._stop_event = None
        logger.info("job_unscheduled", job=self.name)

    async def _loop(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.execute()
            except Exception as e:
                logger.error("job_loop_error", job=self.name, error=str(e))

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

    def get_status(self) -> JobStatus:
        return JobStatus(
            name=self.name,
            is_running=self.lock.locked,
            last_run=self._last_run,
            scheduled=self.is_scheduled,
            interval_minutes=self._interval_minutes if self.is_scheduled else None,
            last_result=self._last_result,
        )


class AlertEvaluationJob(BaseJob):
    """规则评估任务"""

    name = "alert_evaluation"

    async def run(self, db: Session, result: JobResult) -> None:
        engine = AlertRuleEngine(db)
        notifier = self._notifier(db)
        now = datetime.utcnow()

        for user_id in AlertRuleCRUD.get_users_with_active_rules(db):
            try:
                evaluations = engine.evaluate_user_rules(user_id, now=now)
            except Exception as e:
                db.rollback()
                result.errors.append(f"user {user_id}: {e}")
                continue

            for evaluation in evaluations:
                result.processed += 1
                if evaluation.error:
                    result.failed += 1
                    result.errors.append(f"rule {evaluation.rule_id}: {evaluation.error}")
                    continue
                result.succeeded += 1

                if evaluation.alert_created:
                    result.alerts_created += 1
                    alert = AlertCRUD.get_by_id(db, evaluation.alert_id)
                    try:
                        await notifier.notify(alert)
                    except Exception as e:
                        db.rollback()
                        result.errors.append(f"notify {evaluation.alert_id}: {e}")


class HeuristicAlertJob(BaseJob):
    """启发式告警任务"""

    name = "heuristic_alerts"

    async def run(self, db: Session, result: JobResult) -> None:
        aggregator = MetricsAggregator(db)
        budgets = BudgetStore(db)
        checker = HeuristicChecker(
            db,
            settings=self.settings.alerting,
            aggregator=aggregator,
            budgets=budgets,
            alert_manager=AlertManager(db, self.settings.alerting.dedup_window_hours),
        )
        notifier = self._notifier(db)
        now = datetime.utcnow()
        since = now - timedelta(minutes=self.settings.alerting.heuristic_window_minutes)

        user_ids = sorted(set(aggregator.users_with_metrics(since)) | set(budgets.users_with_budgets()))
        for user_id in user_ids:
            result.processed += 1
            try:
                created = checker.generate_heuristic_alerts(user_id, now=now)
            except Exception as e:
                db.rollback()
                result.failed += 1
                result.errors.append(f"user {user_id}: {e}")
                continue
            result.succeeded += 1
            result.alerts_created += len(created)

            for alert in created:
                try:
                    await notifier.notify(alert)
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"notify {alert.id}: {e}")


class NotificationDeliveryJob(BaseJob):
    """投递任务：按创建顺序处理一批到期投递"""

    name = "notification_delivery"

    async def run(self, db: Session, result: JobResult) -> None:
        notifier = self._notifier(db)
        now = datetime.utcnow()

        for delivery in DeliveryCRUD.get_due(db, now, limit=self.settings.notifications.batch_size):
            result.processed += 1
            try:
                outcome = await notifier.process_delivery(delivery, now=now)
            except Exception as e:
                db.rollback()
                result.failed += 1
                result.errors.append(f"delivery {delivery.id}: {e}")
                continue

            if outcome.success:
                result.succeeded += 1
            elif delivery.status == DeliveryStatus.RETRYING.value:
                result.retried += 1
            else:
                result.failed += 1
                result.errors.append(f"delivery {delivery.id}: {outcome.error}")


class CleanupJob(BaseJob):
    """清理任务"""

    name = "cleanup"

    async def run(self, db: Session, result: JobResult) -> None:
        cfg = self.settings.jobs
        steps = {
            "alerts_deleted": lambda: AlertManager(db).cleanup_old_alerts(cfg.alert_retention_days),
            "rules_deleted": lambda: AlertRuleEngine(db).cleanup_inactive_rules(cfg.rule_inactive_days),
            "deliveries_deleted": lambda: self._notifier(db).cleanup_old_deliveries(cfg.delivery_retention_days),
        }

        for key, step in steps.items():
            result.processed += 1
            try:
                result.details[key] = step()
                result.succeeded += 1
            except Exception as e:
                db.rollback()
                result.failed += 1
                result.errors.append(f"{key}: {e}")
