"""
通知路由测试
"""
import pytest

from core.exceptions import ResourceNotFoundError, RuleValidationError
from core.notifications import NotificationRouter


@pytest.fixture
def router(db_session):
    return NotificationRouter(db_session, failure_threshold=5)


@pytest.fixture
def channels(make_channel):
    return {
        "email": make_channel(type="email", config={"address": "ops@example.com"}),
        "in_app": make_channel(type="in_app"),
        "slack": make_channel(type="slack", config={"webhook_url": "https://hooks.slack.com/x"}),
    }


class TestDefaultRouting:
    """无偏好时的默认路由"""

    def test_critical_goes_to_all_channels(self, router, channels):
        resolved = router.resolve_channels("user_1", "error_rate", "critical")
        assert {c.type for c in resolved} == {"email", "in_app", "slack"}

    def test_low_goes_to_email_and_in_app(self, router, channels):
        resolved = router.resolve_channels("user_1", "error_rate", "low")
        assert {c.type for c in resolved} == {"email", "in_app"}

    def test_other_users_channels_excluded(self, router, channels, make_channel):
        make_channel(user_id="user_2", type="in_app")
        resolved = router.resolve_channels("user_1", "error_rate", "high")
        assert all(c.user_id == "user_1" for c in resolved)

    def test_unhealthy_channel_excluded(self, router, make_channel):
        make_channel(type="in_app", failure_count=5)
        healthy = make_channel(type="email", config={"address": "a@b.co"}, failure_count=4)

        assert [c.id for c in router.resolve_channels("user_1", "error_rate", "high")] == [healthy.id]

    def test_unverified_and_inactive_excluded(self, router, make_channel):
        make_channel(type="slack", config={"webhook_url": "https://hooks.slack.com/x"}, is_verified=False)
        make_channel(type="in_app", is_active=False)

        assert router.resolve_channels("user_1", "error_rate", "critical") == []


class TestPreferenceRouting:
    """按偏好路由"""

    def test_preferences_override_defaults(self, router, channels):
        router.set_preference("user_1", "error_rate", "critical", channels["slack"].id)

        resolved = router.resolve_channels("user_1", "error_rate", "critical")
        assert [c.id for c in resolved] == [channels["slack"].id]

        # 其它 (类型, 级别) 仍走默认路由
        assert len(router.resolve_channels("user_1", "slow_response", "critical")) == 3

    def test_disabled_preference_ignored(self, router, channels):
        router.set_preference("user_1", "error_rate", "low", channels["slack"].id, is_enabled=False)

        resolved = router.resolve_channels("user_1", "error_rate", "low")
        assert {c.type for c in resolved} == {"email", "in_app"}

    def test_preference_to_unhealthy_channel_yields_nothing(self, router, channels, db_session):
        router.set_preference("user_1", "error_rate", "high", channels["slack"].id)
        channels["slack"].failure_count = 5
        db_session.commit()

        assert router.resolve_channels("user_1", "error_rate", "high") == []

    def test_upsert_preference(self, router, channels):
        first = router.set_preference("user_1", "error_rate", "high", channels["email"].id)
        second = router.set_preference("user_1", "error_rate", "high", channels["email"].id, is_enabled=False)

        assert first.id == second.id
        assert second.is_enabled is False
        assert len(router.list_preferences("user_1")) == 1

    def test_preference_validation(self, router, channels):
        with pytest.raises(RuleValidationError):
            router.set_preference("user_1", "latency", "high", channels["email"].id)
        with pytest.raises(ResourceNotFoundError):
            router.set_preference("user_2", "error_rate", "high", channels["email"].id)

    def test_delete_preference(self, router, channels):
        pref = router.set_preference("user_1", "error_rate", "high", channels["email"].id)

        assert router.delete_preference(pref.id, "user_2") is False
        assert router.delete_preference(pref.id, "user_1") is True
        assert router.list_preferences("user_1") == []
