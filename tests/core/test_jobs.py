"""
后台任务测试
"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from alerts import AlertRuleEngine
from core.config import Settings
from core.exceptions import ResourceNotFoundError
from core.notifications import DeliveryDispatcher, DeliveryResult
from core.scheduler import (
    BaseJob,
    JobManager,
    JobIntervals,
    LocalJobLock,
    RedisJobLock,
    create_job_lock,
    NotificationDeliveryJob,
    AlertEvaluationJob,
    CleanupJob,
)
from db.crud import DeliveryCRUD
from db.models import Alert, AlertDelivery


@pytest.fixture
def settings():
    return Settings()


class BlockingJob(BaseJob):
    """等待外部事件才结束的任务"""

    name = "blocking"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def run(self, db, result):
        self.started.set()
        await self.release.wait()
        result.processed += 1


class FailingJob(BaseJob):
    name = "failing"

    async def run(self, db, result):
        raise RuntimeError("database unavailable")


class TestJobLocks:
    def test_local_lock(self):
        lock = LocalJobLock("x")
        assert lock.acquire() is True
        assert lock.locked is True
        assert lock.acquire() is False
        lock.release()
        assert lock.acquire() is True

    def test_redis_lock_uses_set_nx(self):
        client = MagicMock()
        client.set.return_value = True
        client.eval.return_value = 1
        lock = RedisJobLock(client, "cleanup", ttl_seconds=60)

        assert lock.acquire() is True
        key, token = client.set.call_args[0]
        assert key == "nexus:job_lock:cleanup"
        assert client.set.call_args[1] == {"nx": True, "px": 60000}

        lock.release()
        args = client.eval.call_args[0]
        assert args[1:] == (1, "nexus:job_lock:cleanup", token)

    def test_redis_lock_held_elsewhere(self):
        client = MagicMock()
        client.set.return_value = None
        lock = RedisJobLock(client, "cleanup")

        assert lock.acquire() is False
        lock.release()
        client.eval.assert_not_called()

    def test_factory(self):
        assert isinstance(create_job_lock("a"), LocalJobLock)
        assert isinstance(create_job_lock("a", "redis", "redis://localhost:6379/0"), RedisJobLock)


class TestBaseJob:
    """执行与互斥"""

    @pytest.mark.asyncio
    async def test_concurrent_execution_is_skipped(self, session_factory, settings):
        job = BlockingJob(session_factory=session_factory, settings=settings)

        first = asyncio.create_task(job.execute())
        await job.started.wait()

        skipped = await job.execute()
        assert skipped.skipped is True
        assert skipped.errors == ["blocking is already running"]
        assert job.get_status().is_running is True

        job.release.set()
        result = await first
        assert result.skipped is False
        assert result.processed == 1
        assert job.get_status().is_running is False

    @pytest.mark.asyncio
    async def test_failure_recorded_and_lock_released(self, session_factory, settings):
        job = FailingJob(session_factory=session_factory, settings=settings)

        result = await job.execute()

        assert result.errors == ["database unavailable"]
        assert job.lock.locked is False
        status = job.get_status().to_dict()
        assert status["last_run"].endswith("Z")
        assert status["last_result"]["errors"] == ["database unavailable"]

    @pytest.mark.asyncio
    async def test_scheduler_start_stop(self, session_factory, settings):
        job = BlockingJob(session_factory=session_factory, settings=settings)
        job.release.set()

        job.start_scheduler(60)
        await job.started.wait()
        assert job.get_status().scheduled is True
        assert job.get_status().interval_minutes == 60

        await job.stop_scheduler()
        assert job.get_status().scheduled is False

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_run(self, session_factory, settings):
        """停止调度时正在进行的执行会跑完并记录结果"""
        job = BlockingJob(session_factory=session_factory, settings=settings)

        job.start_scheduler(60)
        await job.started.wait()

        stopping = asyncio.create_task(job.stop_scheduler())
        await asyncio.sleep(0.05)
        assert stopping.done() is False
        assert job.get_status().is_running is True

        job.release.set()
        await stopping

        status = job.get_status()
        assert status.scheduled is False
        assert status.is_running is False
        assert status.last_run is not None
        assert status.last_result.processed == 1
        assert status.last_result.errors == []


class FakeDispatcher(DeliveryDispatcher):
    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = outcomes

    async def deliver(self, alert, channel):
        return self.outcomes[channel.type]


class TestNotificationDeliveryJob:
    @pytest.mark.asyncio
    async def test_counts(self, db_session, session_factory, settings, make_channel, make_alert):
        alert = make_alert()
        ok = make_channel(type="in_app")
        flaky = make_channel(type="slack", config={"webhook_url": "https://hooks.slack.com/x"})
        broken = make_channel(type="teams", config={"webhook_url": "https://outlook.office.com/x"})
        unverified = make_channel(type="discord", config={"webhook_url": "https://discord.com/x"}, is_verified=False)
        for channel in (ok, flaky, broken, unverified):
            DeliveryCRUD.create(db_session, alert.id, channel.id)

        dispatcher = FakeDispatcher({
            "in_app": DeliveryResult.ok(),
            "slack": DeliveryResult.fail("HTTP 503", should_retry=True),
            "teams": DeliveryResult.fail("HTTP 400", should_retry=False),
        })
        job = NotificationDeliveryJob(session_factory=session_factory, settings=settings, dispatcher=dispatcher)

        result = await job.execute()

        assert result.processed == 3
        assert result.succeeded == 1
        assert result.retried == 1
        assert result.failed == 1
        db_session.expire_all()
        statuses = {d.channel.type: d.status for d in db_session.query(AlertDelivery).all()}
        assert statuses == {"in_app": "sent", "slack": "retrying", "teams": "failed", "discord": "pending"}


class TestAlertEvaluationJob:
    @pytest.mark.asyncio
    async def test_creates_and_notifies(self, db_session, session_factory, settings, provider, add_metrics, make_channel):
        make_channel(type="in_app")
        AlertRuleEngine(db_session).create_rule("user_1", "Errors", "error_rate", "high", {
            "metric": "error_rate", "operator": "gt", "threshold": 10, "time_window_minutes": 60,
        })
        add_metrics("user_1", "openai", [500] * 10)

        job = AlertEvaluationJob(session_factory=session_factory, settings=settings)
        result = await job.execute()

        assert result.processed == 1
        assert result.alerts_created == 1
        db_session.expire_all()
        assert db_session.query(Alert).count() == 1
        assert [d.status for d in db_session.query(AlertDelivery).all()] == ["sent"]


class TestCleanupJob:
    @pytest.mark.asyncio
    async def test_details(self, session_factory, settings):
        result = await CleanupJob(session_factory=session_factory, settings=settings).execute()

        assert result.details == {"alerts_deleted": 0, "rules_deleted": 0, "deliveries_deleted": 0}
        assert result.succeeded == 3


class TestJobManager:
    def test_intervals_from_settings(self, settings):
        intervals = JobIntervals.from_settings(settings)
        assert intervals == JobIntervals(alert_evaluation=1, notification_delivery=2, cleanup=1440, heuristic_alerts=15)

    def test_status(self, session_factory, settings):
        manager = JobManager(session_factory=session_factory, settings=settings)

        status = manager.get_status()
        assert set(status) == {"alert_evaluation", "heuristic_alerts", "notification_delivery", "cleanup"}
        assert status["cleanup"]["scheduled"] is False
        assert status["cleanup"]["last_run"] is None

    def test_unknown_job(self, session_factory, settings):
        manager = JobManager(session_factory=session_factory, settings=settings)
        with pytest.raises(ResourceNotFoundError):
            manager.get_job("nope")

    @pytest.mark.asyncio
    async def test_run_once(self, session_factory, settings):
        manager = JobManager(session_factory=session_factory, settings=settings)

        result = await manager.run_job_once("cleanup")

        assert result.job == "cleanup"
        assert manager.get_status()["cleanup"]["last_result"]["details"]["alerts_deleted"] == 0

    @pytest.mark.asyncio
    async def test_start_and_restart(self, session_factory, settings):
        manager = JobManager(session_factory=session_factory, settings=settings)
        manager.start_all(JobIntervals(alert_evaluation=60, notification_delivery=60, cleanup=60, heuristic_alerts=60))
        try:
            assert all(s["scheduled"] for s in manager.get_status().values())

            status = await manager.restart_job("cleanup", 5)
            assert status.interval_minutes == 5
        finally:
            await manager.stop_all()

        assert not any(s["scheduled"] for s in manager.get_status().values())
