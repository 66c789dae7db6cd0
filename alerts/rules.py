"""
告警规则引擎

用户自定义规则的校验、评估与管理。
规则条件: 指标在回溯窗口内的聚合值与阈值比较，触发后交给 AlertManager 创建告警。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, ValidationError
from sqlalchemy.orm import Session
import structlog

from core.exceptions import RuleValidationError, ProviderNotFoundError
from db.crud import AlertRuleCRUD
from db.models import (
    AlertRule, ApiProvider, AlertType, AlertSeverity,
    RuleMetric, ConditionOperator, Aggregation,
)
from .aggregator import MetricsAggregator
from .manager import AlertManager, AlertData

logger = structlog.get_logger(__name__)


TYPE_LABELS = {
    AlertType.ERROR_RATE.value: "High Error Rate",
    AlertType.SLOW_RESPONSE.value: "Slow Response Time",
    AlertType.COST_THRESHOLD.value: "Cost Threshold Exceeded",
    AlertType.RATE_LIMIT.value: "Rate Limit Reached",
    AlertType.DOWNTIME.value: "Service Downtime",
    AlertType.BUDGET_EXCEEDED.value: "Budget Exceeded",
}

OPERATOR_LABELS = {
    ConditionOperator.GT.value: "greater than",
    ConditionOperator.GTE.value: "greater than or equal to",
    ConditionOperator.LT.value: "less than",
    ConditionOperator.LTE.value: "less than or equal to",
    ConditionOperator.EQ.value: "equal to",
}


class RuleConditions(BaseModel):
    """
    规则条件

    输入同时接受 snake_case 与 camelCase（timeWindowMinutes / timeWindow / minimumDataPoints）
    """
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="ignore")

    metric: RuleMetric
    operator: ConditionOperator
    threshold: float = Field(ge=0)
    time_window_minutes: int = Field(
        ge=1, le=1440,
        validation_alias=AliasChoices("time_window_minutes", "timeWindowMinutes", "timeWindow"),
    )
    aggregation: Optional[Aggregation] = None
    minimum_data_points: Optional[int] = Field(
        default=None, ge=1,
        validation_alias=AliasChoices("minimum_data_points", "minimumDataPoints"),
    )


def parse_conditions(raw: Any) -> RuleConditions:
    """
    校验规则条件

    Raises:
        RuleValidationError: 条件不合法
    """
    if isinstance(raw, RuleConditions):
        return raw
    if not isinstance(raw, dict):
        raise RuleValidationError("Rule conditions must be an object")
    try:
        return RuleConditions.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise RuleValidationError(f"Invalid rule conditions: {details}") from e


def evaluate_condition(value: float, operator: str, threshold: float) -> bool:
    """比较当前值与阈值"""
    if operator == ConditionOperator.GT.value:
        return value > threshold
    elif operator == ConditionOperator.GTE.value:
        return value >= threshold
    elif operator == ConditionOperator.LT.value:
        return value < threshold
    elif operator == ConditionOperator.LTE.value:
        return value <= threshold
    elif operator == ConditionOperator.EQ.value:
        return value == threshold
    return False


def is_in_cooldown(rule: AlertRule, now: Optional[datetime] = None) -> bool:
    """检查规则是否处于冷却期"""
    if rule.last_triggered is None:
        return False
    now = now or datetime.utcnow()
    return now < rule.last_triggered + timedelta(minutes=rule.cooldown_minutes or 0)


def format_metric_value(value: float, metric: str, aggregation: Optional[str] = None) -> str:
    """按指标的自然单位格式化"""
    if metric in (RuleMetric.ERROR_RATE.value, RuleMetric.SUCCESS_RATE.value):
        return f"{value:.2f}%"
    if metric == RuleMetric.RESPONSE_TIME.value:
        return f"{value:.0f}ms"
    if metric == RuleMetric.COST.value:
        return f"${value:.2f}"
    if metric == RuleMetric.REQUEST_COUNT.value:
        if aggregation in (Aggregation.COUNT.value, Aggregation.SUM.value):
            return f"{value:.0f} requests"
        return f"{value:.0f} requests/min"
    return f"{value:.2f}"


@dataclass
class RuleEvaluationResult:
    """单条规则的评估结果"""
    rule_id: str
    triggered: bool
    threshold: Optional[float] = None
    current_value: Optional[float] = None
    alert_created: bool = False
    alert_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "triggered": self.triggered,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "alert_created": self.alert_created,
            "alert_id": self.alert_id,
            "error": self.error,
        }


class AlertRuleEngine:
    """
    告警规则引擎

    功能:
    - 规则 CRUD（归属校验、条件校验、提供方存在性校验）
    - 评估规则并创建告警
    - 规则试运行与统计
    """

    def __init__(
        self,
        db: Session,
        aggregator: Optional[MetricsAggregator] = None,
        alert_manager: Optional[AlertManager] = None,
    ):
        self.db = db
        self.aggregator = aggregator or MetricsAggregator(db)
        self.alert_manager = alert_manager or AlertManager(db)

    # ===== 管理 =====

    def _ensure_provider(self, provider_id: Optional[str]) -> None:
        if provider_id is None:
            return
        if self.db.query(ApiProvider.id).filter(ApiProvider.id == provider_id).first() is None:
            raise ProviderNotFoundError(provider_id)

    @staticmethod
    def _validate_enum(enum_cls, value: str, label: str) -> str:
        try:
            return enum_cls(value).value
        except ValueError:
            raise RuleValidationError(f"Invalid {label}: {value}")

    def create_rule(
        self,
        user_id: str,
        name: str,
        type: str,
        severity: str,
        conditions: Dict[str, Any],
        provider_id: Optional[str] = None,
        description: Optional[str] = None,
        is_active: bool = True,
        cooldown_minutes: int = 60,
    ) -> AlertRule:
        """
        创建规则

        Raises:
            RuleValidationError: 类型 / 级别 / 条件不合法
            ProviderNotFoundError: 提供方不存在
        """
        if not name or not name.strip():
            raise RuleValidationError("Rule name is required")
        if cooldown_minutes < 0:
            raise RuleValidationError("Cooldown must not be negative")
        type = self._validate_enum(AlertType, type, "alert type")
        severity = self._validate_enum(AlertSeverity, severity, "severity")
        parsed = parse_conditions(conditions)
        self._ensure_provider(provider_id)

        rule = AlertRuleCRUD.create(
            self.db,
            user_id=user_id,
            provider_id=provider_id,
            name=name.strip(),
            description=description,
            type=type,
            severity=severity,
            conditions=parsed.model_dump(exclude_none=True),
            is_active=is_active,
            cooldown_minutes=cooldown_minutes,
        )
        logger.info("alert_rule_created", rule_id=rule.id, user_id=user_id, name=rule.name)
        return rule

    def get_rule(self, rule_id: str, user_id: str) -> Optional[AlertRule]:
        return AlertRuleCRUD.get_by_id(self.db, rule_id, user_id=user_id)

    def list_rules(self, user_id: str, page: int = 1, page_size: int = 20, **filters) -> Tuple[List[AlertRule], int]:
        """filters: provider_id, type, is_active"""
        return AlertRuleCRUD.get_list(self.db, user_id=user_id, page=page, page_size=page_size, **filters)

    def update_rule(self, rule_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[AlertRule]:
        """
        更新规则

        fields 中出现的条件 / 类型 / 级别 / 提供方会重新校验

        Returns:
            更新后的规则，不存在时返回 None
        """
        rule = self.get_rule(rule_id, user_id)
        if rule is None:
            return None

        allowed = {
            "name", "description", "type", "severity", "conditions",
            "provider_id", "is_active", "cooldown_minutes",
        }
        updates = {k: v for k, v in fields.items() if k in allowed}

        if "name" in updates:
            if not updates["name"] or not str(updates["name"]).strip():
                raise RuleValidationError("Rule name is required")
            updates["name"] = str(updates["name"]).strip()
        if "type" in updates:
            updates["type"] = self._validate_enum(AlertType, updates["type"], "alert type")
        if "severity" in updates:
            updates["severity"] = self._validate_enum(AlertSeverity, updates["severity"], "severity")
        if "conditions" in updates:
            updates["conditions"] = parse_conditions(updates["conditions"]).model_dump(exclude_none=True)
        if "cooldown_minutes" in updates and updates["cooldown_minutes"] < 0:
            raise RuleValidationError("Cooldown must not be negative")
        if "provider_id" in updates:
            self._ensure_provider(updates["provider_id"])

        rule = AlertRuleCRUD.update(self.db, rule, updates)
        logger.info("alert_rule_updated", rule_id=rule.id, fields=sorted(updates))
        return rule

    def delete_rule(self, rule_id: str, user_id: str) -> bool:
        rule = self.get_rule(rule_id, user_id)
        if rule is None:
            return False
        AlertRuleCRUD.delete(self.db, rule)
        logger.info("alert_rule_deleted", rule_id=rule_id, user_id=user_id)
        return True

    def toggle_rule(self, rule_id: str, user_id: str) -> Optional[AlertRule]:
        """切换启用状态"""
        rule = self.get_rule(rule_id, user_id)
        if rule is None:
            return None
        rule = AlertRuleCRUD.update(self.db, rule, {"is_active": not rule.is_active})
        logger.info("alert_rule_toggled", rule_id=rule_id, is_active=rule.is_active)
        return rule

    # ===== 评估 =====

    def _build_alert(self, rule: AlertRule, conditions: RuleConditions, value: float, now: datetime) -> AlertData:
        current = format_metric_value(value, conditions.metric, conditions.aggregation)
        threshold = format_metric_value(conditions.threshold, conditions.metric, conditions.aggregation)
        operator = OPERATOR_LABELS.get(conditions.operator, conditions.operator)

        return AlertData(
            user_id=rule.user_id,
            provider_id=rule.provider_id,
            type=rule.type,
            severity=rule.severity,
            title=f"{TYPE_LABELS.get(rule.type, rule.type)}: {rule.name}",
            message=(
                f'Alert rule "{rule.name}" has been triggered. '
                f"Current value ({current}) is {operator} threshold ({threshold}) "
                f"over the last {conditions.time_window_minutes} minutes."
            ),
            metadata={
                "rule_id": rule.id,
                "rule_name": rule.name,
                "metric": conditions.metric,
                "current_value": value,
                "threshold": conditions.threshold,
                "operator": conditions.operator,
                "time_window_minutes": conditions.time_window_minutes,
                "triggered_at": now.isoformat() + "Z",
            },
        )

    def _measure(self, rule: AlertRule, conditions: RuleConditions, now: datetime):
        return self.aggregator.aggregate(
            user_id=rule.user_id,
            metric=conditions.metric,
            window_minutes=conditions.time_window_minutes,
            provider_id=rule.provider_id,
            aggregation=conditions.aggregation,
            now=now,
        )

    def evaluate(self, rule: AlertRule, now: Optional[datetime] = None) -> RuleEvaluationResult:
        """
        评估单条规则

        1. 冷却期内直接返回未触发，不查询指标
        2. 查询规则窗口内的聚合值
        3. 样本数不足 minimum_data_points 时不触发
        4. 条件成立则创建告警；只有真正创建了告警才更新 last_triggered / trigger_count

        指标查询等异常记录在 error 字段中，不向外抛出
        """
        now = now or datetime.utcnow()
        try:
            conditions = parse_conditions(rule.conditions)
        except RuleValidationError as e:
            return RuleEvaluationResult(rule_id=rule.id, triggered=False, error=str(e))

        result = RuleEvaluationResult(rule_id=rule.id, triggered=False, threshold=conditions.threshold)

        if is_in_cooldown(rule, now):
            logger.debug("alert_rule_in_cooldown", rule_id=rule.id)
            return result

        try:
            aggregate = self._measure(rule, conditions, now)
            result.current_value = aggregate.value

            if conditions.minimum_data_points and aggregate.sample_count < conditions.minimum_data_points:
                logger.debug(
                    "alert_rule_insufficient_data",
                    rule_id=rule.id,
                    samples=aggregate.sample_count,
                    required=conditions.minimum_data_points,
                )
                return result

            result.triggered = evaluate_condition(aggregate.value, conditions.operator, conditions.threshold)
            if not result.triggered:
                return result

            alert = self.alert_manager.create(self._build_alert(rule, conditions, aggregate.value, now), now=now)
            if alert is not None:
                AlertRuleCRUD.mark_triggered(self.db, rule, now)
                result.alert_created = True
                result.alert_id = alert.id

            logger.info(
                "alert_rule_triggered",
                rule_id=rule.id,
                metric=conditions.metric,
                value=aggregate.value,
                threshold=conditions.threshold,
                alert_created=result.alert_created,
            )
        except Exception as e:
            self.db.rollback()
            logger.warning("alert_rule_evaluation_failed", rule_id=rule.id, error=str(e))
            result.triggered = False
            result.error = str(e)

        return result

    def evaluate_user_rules(self, user_id: str, now: Optional[datetime] = None) -> List[RuleEvaluationResult]:
        """评估用户全部启用的规则，单条失败不影响其它规则"""
        results = []
        for rule in AlertRuleCRUD.get_active_by_user(self.db, user_id):
            results.append(self.evaluate(rule, now=now))
        return results

    def test_rule(self, rule: AlertRule, now: Optional[datetime] = None) -> RuleEvaluationResult:
        """试运行：忽略冷却期，永不创建告警"""
        now = now or datetime.utcnow()
        try:
            conditions = parse_conditions(rule.conditions)
        except RuleValidationError as e:
            return RuleEvaluationResult(rule_id=rule.id, triggered=False, error=str(e))

        result = RuleEvaluationResult(rule_id=rule.id, triggered=False, threshold=conditions.threshold)
        try:
            aggregate = self._measure(rule, conditions, now)
        except Exception as e:
            self.db.rollback()
            result.error = str(e)
            return result

        result.current_value = aggregate.value
        enough = not conditions.minimum_data_points or aggregate.sample_count >= conditions.minimum_data_points
        result.triggered = enough and evaluate_condition(aggregate.value, conditions.operator, conditions.threshold)
        return result

    # ===== 统计与清理 =====

    def get_rule_stats(self, user_id: str) -> Dict[str, Any]:
        now = datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        _, total = AlertRuleCRUD.get_list(self.db, user_id, page_size=1)
        _, active = AlertRuleCRUD.get_list(self.db, user_id, page_size=1, is_active=True)

        by_type = {t.value: 0 for t in AlertType}
        by_type.update(AlertRuleCRUD.count_by_field(self.db, user_id, "type"))
        by_severity = {s.value: 0 for s in AlertSeverity}
        by_severity.update(AlertRuleCRUD.count_by_field(self.db, user_id, "severity"))

        return {
            "total_rules": total,
            "active_rules": active,
            "triggered_today": AlertRuleCRUD.count_triggered_since(self.db, user_id, today),
            "triggered_this_week": AlertRuleCRUD.count_triggered_since(
                self.db, user_id, now - timedelta(days=7),
            ),
            "by_type": by_type,
            "by_severity": by_severity,
        }

    def cleanup_inactive_rules(self, inactive_days: int = 90) -> int:
        """删除停用且超过 inactive_days 未更新的规则"""
        cutoff = datetime.utcnow() - timedelta(days=inactive_days)
        deleted = AlertRuleCRUD.delete_inactive_before(self.db, cutoff)
        logger.info("inactive_rules_cleaned", deleted=deleted, inactive_days=inactive_days)
        return deleted
