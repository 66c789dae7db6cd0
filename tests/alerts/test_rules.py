"""
告警规则引擎测试
"""
from datetime import datetime, timedelta

import pytest

from alerts.rules import (
    AlertRuleEngine,
    parse_conditions,
    evaluate_condition,
    is_in_cooldown,
    format_metric_value,
)
from core.exceptions import RuleValidationError, ProviderNotFoundError
from db.models import Alert, AlertRule

ERROR_RATE_CONDITIONS = {
    "metric": "error_rate",
    "operator": "gt",
    "threshold": 10,
    "time_window_minutes": 60,
}


@pytest.fixture
def engine(db_session):
    return AlertRuleEngine(db_session)


@pytest.fixture
def rule(engine, provider):
    return engine.create_rule(
        user_id="user_1",
        name="OpenAI errors",
        type="error_rate",
        severity="high",
        conditions=ERROR_RATE_CONDITIONS,
        provider_id="openai",
        cooldown_minutes=30,
    )


class TestConditions:
    """条件解析与比较"""

    def test_camel_case_aliases(self):
        conditions = parse_conditions({
            "metric": "response_time",
            "operator": "gte",
            "threshold": 5000,
            "timeWindow": 15,
            "minimumDataPoints": 5,
        })
        assert conditions.time_window_minutes == 15
        assert conditions.minimum_data_points == 5
        assert conditions.metric == "response_time"

    @pytest.mark.parametrize("raw", [
        {**ERROR_RATE_CONDITIONS, "metric": "latency"},
        {**ERROR_RATE_CONDITIONS, "operator": "ne"},
        {**ERROR_RATE_CONDITIONS, "threshold": -1},
        {**ERROR_RATE_CONDITIONS, "time_window_minutes": 0},
        {**ERROR_RATE_CONDITIONS, "time_window_minutes": 1441},
        {"metric": "error_rate", "operator": "gt"},
        "error_rate > 10",
    ])
    def test_invalid_conditions(self, raw):
        with pytest.raises(RuleValidationError):
            parse_conditions(raw)

    @pytest.mark.parametrize("operator,value,expected", [
        ("gt", 10.0, False),
        ("gt", 10.1, True),
        ("gte", 10.0, True),
        ("lt", 9.9, True),
        ("lte", 10.0, True),
        ("eq", 10.0, True),
        ("eq", 10.5, False),
    ])
    def test_evaluate_condition(self, operator, value, expected):
        assert evaluate_condition(value, operator, 10.0) is expected

    def test_format_metric_value(self):
        assert format_metric_value(11, "error_rate") == "11.00%"
        assert format_metric_value(5200.4, "response_time") == "5200ms"
        assert format_metric_value(12.5, "cost") == "$12.50"
        assert format_metric_value(42, "request_count") == "42 requests/min"
        assert format_metric_value(42, "request_count", "count") == "42 requests"


class TestRuleManagement:
    """规则 CRUD"""

    def test_create_rule(self, rule):
        assert rule.id.startswith("rule_")
        assert rule.is_active is True
        assert rule.trigger_count == 0
        assert rule.conditions["time_window_minutes"] == 60

    def test_create_rule_unknown_provider(self, engine):
        with pytest.raises(ProviderNotFoundError):
            engine.create_rule("user_1", "x", "error_rate", "high", ERROR_RATE_CONDITIONS, provider_id="nope")

    def test_create_rule_invalid_type(self, engine):
        with pytest.raises(RuleValidationError, match="Invalid alert type"):
            engine.create_rule("user_1", "x", "latency", "high", ERROR_RATE_CONDITIONS)

    def test_update_revalidates_conditions(self, engine, rule):
        with pytest.raises(RuleValidationError):
            engine.update_rule(rule.id, "user_1", {"conditions": {"metric": "error_rate"}})

        updated = engine.update_rule(rule.id, "user_1", {"name": "Renamed", "severity": "critical"})
        assert updated.name == "Renamed"
        assert updated.severity == "critical"

    def test_other_user_cannot_access(self, engine, rule):
        assert engine.get_rule(rule.id, "user_2") is None
        assert engine.update_rule(rule.id, "user_2", {"name": "x"}) is None
        assert engine.delete_rule(rule.id, "user_2") is False

    def test_toggle(self, engine, rule):
        assert engine.toggle_rule(rule.id, "user_1").is_active is False
        assert engine.toggle_rule(rule.id, "user_1").is_active is True


class TestRuleEvaluation:
    """规则评估"""

    def test_triggers_and_creates_alert(self, engine, rule, db_session, add_metrics):
        add_metrics("user_1", "openai", [200] * 8 + [500] * 2)  # 20%

        result = engine.evaluate(rule)

        assert result.triggered is True
        assert result.alert_created is True
        assert result.current_value == pytest.approx(20.0)
        alert = db_session.get(Alert, result.alert_id)
        assert alert.severity == "high"
        assert alert.title == "High Error Rate: OpenAI errors"
        assert "Current value (20.00%) is greater than threshold (10.00%)" in alert.message
        assert alert.metadata_["rule_id"] == rule.id

        db_session.refresh(rule)
        assert rule.trigger_count == 1
        assert rule.last_triggered is not None

    def test_not_triggered_below_threshold(self, engine, rule, add_metrics):
        add_metrics("user_1", "openai", [200] * 19 + [500])  # 5%

        result = engine.evaluate(rule)
        assert result.triggered is False
        assert result.alert_created is False

    def test_cooldown_skips_evaluation(self, engine, rule, db_session, add_metrics):
        """冷却期内即使条件成立也不创建告警，也不增加计数"""
        add_metrics("user_1", "openai", [500] * 10)
        now = datetime.utcnow()
        rule.last_triggered = now - timedelta(minutes=10)
        rule.trigger_count = 1
        db_session.commit()

        assert is_in_cooldown(rule, now) is True
        result = engine.evaluate(rule, now=now)

        assert result.triggered is False
        assert result.current_value is None
        assert db_session.query(Alert).count() == 0
        db_session.refresh(rule)
        assert rule.trigger_count == 1

    def test_cooldown_expired(self, rule):
        rule.last_triggered = datetime.utcnow() - timedelta(minutes=31)
        assert is_in_cooldown(rule) is False

    def test_minimum_data_points(self, engine, rule, db_session, add_metrics):
        rule.conditions = {**ERROR_RATE_CONDITIONS, "minimum_data_points": 10}
        db_session.commit()
        add_metrics("user_1", "openai", [500] * 5)

        result = engine.evaluate(rule)
        assert result.triggered is False
        assert result.current_value == pytest.approx(100.0)

    def test_deduplicated_alert_does_not_touch_rule(self, engine, rule, db_session, add_metrics):
        """告警被去重时不更新 last_triggered / trigger_count"""
        add_metrics("user_1", "openai", [500] * 10)
        first = engine.evaluate(rule)
        assert first.alert_created is True

        later = datetime.utcnow() + timedelta(minutes=45)
        second = engine.evaluate(rule, now=later)
        assert second.triggered is True
        assert second.alert_created is False

        db_session.refresh(rule)
        assert rule.trigger_count == 1

    def test_invalid_stored_conditions_reported(self, engine, rule, db_session):
        rule.conditions = {"metric": "nope"}
        db_session.commit()

        result = engine.evaluate(rule)
        assert result.triggered is False
        assert "Invalid rule conditions" in result.error

    def test_evaluate_user_rules_only_active(self, engine, rule, db_session, add_metrics):
        engine.create_rule("user_1", "Disabled", "error_rate", "low", ERROR_RATE_CONDITIONS, is_active=False)
        add_metrics("user_1", "openai", [500] * 10)

        results = engine.evaluate_user_rules("user_1")
        assert [r.rule_id for r in results] == [rule.id]

    def test_test_rule_ignores_cooldown_and_never_creates(self, engine, rule, db_session, add_metrics):
        add_metrics("user_1", "openai", [500] * 10)
        rule.last_triggered = datetime.utcnow()
        db_session.commit()

        result = engine.test_rule(rule)
        assert result.triggered is True
        assert result.alert_created is False
        assert db_session.query(Alert).count() == 0


class TestRuleStatsAndCleanup:
    def test_stats(self, engine, rule, add_metrics):
        engine.create_rule("user_1", "Cost", "cost_threshold", "medium", {
            "metric": "cost", "operator": "gt", "threshold": 100, "time_window_minutes": 1440,
        }, is_active=False)
        add_metrics("user_1", "openai", [500] * 10)
        engine.evaluate(rule)

        stats = engine.get_rule_stats("user_1")
        assert stats["total_rules"] == 2
        assert stats["active_rules"] == 1
        assert stats["triggered_today"] == 1
        assert stats["triggered_this_week"] == 1
        assert stats["by_type"]["cost_threshold"] == 1
        assert stats["by_severity"]["high"] == 1

    def test_cleanup_inactive_rules(self, engine, rule, db_session):
        stale = engine.create_rule("user_1", "Stale", "downtime", "low", ERROR_RATE_CONDITIONS, is_active=False)
        stale.updated_at = datetime.utcnow() - timedelta(days=100)
        db_session.commit()

        assert engine.cleanup_inactive_rules(inactive_days=90) == 1
        assert db_session.query(AlertRule).count() == 1
