"""
告警管理器测试
"""
from datetime import datetime, timedelta

import pytest

from alerts.manager import AlertManager, AlertData
from core.exceptions import ProviderNotFoundError
from db.models import Alert


def alert_data(**overrides) -> AlertData:
    fields = dict(
        user_id="user_1",
        type="error_rate",
        severity="high",
        title="High Error Rate Detected",
        message="Error rate of 12.00% detected in the last hour (12/100 requests)",
    )
    fields.update(overrides)
    return AlertData(**fields)


class TestAlertCreation:
    """创建与去重测试"""

    def test_create(self, db_session, provider):
        alert = AlertManager(db_session).create(alert_data(provider_id="openai", metadata={"rate": 12}))

        assert alert is not None
        assert alert.id.startswith("alert_")
        assert alert.is_read is False
        assert alert.is_resolved is False
        assert alert.metadata_ == {"rate": 12}

    def test_duplicate_suppressed(self, db_session, provider):
        """同一 (用户, 提供方, 类型) 的未解决告警 24 小时内只创建一次"""
        manager = AlertManager(db_session)
        first = manager.create(alert_data(provider_id="openai"))
        second = manager.create(alert_data(provider_id="openai", severity="critical"))

        assert first is not None
        assert second is None
        assert db_session.query(Alert).count() == 1

    def test_null_provider_matches_null(self, db_session, provider):
        manager = AlertManager(db_session)
        assert manager.create(alert_data()) is not None
        assert manager.create(alert_data()) is None
        # 有提供方的告警与无提供方的告警互不影响
        assert manager.create(alert_data(provider_id="openai")) is not None

    def test_different_type_not_deduplicated(self, db_session):
        manager = AlertManager(db_session)
        assert manager.create(alert_data(type="error_rate")) is not None
        assert manager.create(alert_data(type="slow_response")) is not None

    def test_resolved_alert_allows_new(self, db_session):
        manager = AlertManager(db_session)
        first = manager.create(alert_data())
        assert manager.resolve(first.id, "user_1") is True

        assert manager.create(alert_data()) is not None

    def test_window_expired_allows_new(self, db_session):
        manager = AlertManager(db_session)
        manager.create(alert_data())

        later = datetime.utcnow() + timedelta(hours=25)
        assert manager.create(alert_data(), now=later) is not None

    def test_unknown_provider(self, db_session):
        with pytest.raises(ProviderNotFoundError, match="Provider missing not found"):
            AlertManager(db_session).create(alert_data(provider_id="missing"))


class TestAlertState:
    """已读、解决、删除"""

    def test_mark_as_read_checks_owner(self, db_session, make_alert):
        alert = make_alert(user_id="user_1")
        manager = AlertManager(db_session)

        assert manager.mark_as_read(alert.id, "user_2") is False
        assert manager.mark_as_read(alert.id, "user_1") is True
        assert manager.get_alert(alert.id, "user_1").is_read is True

    def test_mark_all_as_read(self, db_session, provider, make_alert):
        make_alert(type="error_rate", provider_id="openai")
        make_alert(type="slow_response")
        make_alert(user_id="user_2")

        manager = AlertManager(db_session)
        assert manager.mark_all_as_read("user_1", provider_id="openai") == 1
        assert manager.mark_all_as_read("user_1") == 1
        assert manager.get_stats("user_2")["unread"] == 1

    def test_mark_multiple_empty_list(self, db_session, make_alert):
        make_alert()
        assert AlertManager(db_session).mark_multiple_as_read([], "user_1") == 0

    def test_resolve_only_unresolved(self, db_session, make_alert):
        alert = make_alert()
        manager = AlertManager(db_session)

        assert manager.resolve(alert.id, "user_1") is True
        assert manager.resolve(alert.id, "user_1") is False

        resolved = manager.get_alert(alert.id, "user_1")
        assert resolved.is_resolved is True
        assert resolved.is_read is True
        assert resolved.resolved_at is not None

    def test_bulk_resolve(self, db_session, make_alert):
        a = make_alert(type="error_rate")
        b = make_alert(type="slow_response")
        other = make_alert(user_id="user_2")

        count = AlertManager(db_session).bulk_resolve([a.id, b.id, other.id], "user_1")
        assert count == 2

    def test_delete(self, db_session, make_alert):
        alert = make_alert()
        manager = AlertManager(db_session)

        assert manager.delete_alert(alert.id, "user_2") is False
        assert manager.delete_alert(alert.id, "user_1") is True
        assert manager.get_alert(alert.id, "user_1") is None


class TestAlertQueries:
    """列表、统计与清理"""

    def test_list_newest_first_with_filters(self, db_session, make_alert):
        old = make_alert(type="error_rate", severity="medium")
        new = make_alert(type="slow_response", severity="critical")
        old.created_at = datetime.utcnow() - timedelta(hours=2)
        db_session.commit()

        manager = AlertManager(db_session)
        alerts, total = manager.list_alerts("user_1")
        assert total == 2
        assert [a.id for a in alerts] == [new.id, old.id]

        alerts, total = manager.list_alerts("user_1", severity="critical")
        assert total == 1 and alerts[0].id == new.id

    def test_pagination(self, db_session, make_alert):
        for alert_type in ("error_rate", "slow_response", "downtime"):
            make_alert(type=alert_type)

        alerts, total = AlertManager(db_session).list_alerts("user_1", page=2, page_size=2)
        assert total == 3
        assert len(alerts) == 1

    def test_stats(self, db_session, make_alert):
        make_alert(type="error_rate", severity="high")
        make_alert(type="slow_response", severity="high", is_read=True)

        stats = AlertManager(db_session).get_stats("user_1")
        assert stats["total"] == 2
        assert stats["unread"] == 1
        assert stats["unresolved"] == 2
        assert stats["recent_count"] == 2
        assert stats["by_type"]["error_rate"] == 1
        assert stats["by_type"]["budget_exceeded"] == 0
        assert stats["by_severity"] == {"low": 0, "medium": 0, "high": 2, "critical": 0}

    def test_cleanup_old_alerts(self, db_session, make_alert, make_channel):
        """删除超过保留期的已解决告警及其投递记录"""
        from db.models import AlertDelivery

        channel = make_channel()
        old = make_alert(type="error_rate", is_resolved=True, resolved_at=datetime.utcnow() - timedelta(days=40))
        recent = make_alert(type="downtime", is_resolved=True, resolved_at=datetime.utcnow() - timedelta(days=2))
        open_alert = make_alert(type="slow_response")
        db_session.add(AlertDelivery(alert_id=old.id, channel_id=channel.id, status="sent"))
        db_session.commit()

        deleted = AlertManager(db_session).cleanup_old_alerts(retention_days=30)

        assert deleted == 1
        remaining = {a.id for a in db_session.query(Alert).all()}
        assert remaining == {recent.id, open_alert.id}
        assert db_session.query(AlertDelivery).count() == 0
