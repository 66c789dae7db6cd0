"""
启发式告警检查器

不依赖用户规则，按固定阈值扫描最近一小时的调用记录与预算:
1. 错误率过高
2. 平均响应时间过慢
3. 预算达到告警阈值 / 超支
"""
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy.orm import Session
import structlog

from core.config import AlertingSettings, get_settings
from core.exceptions import AlertingError
from db.models import Alert, AlertType, AlertSeverity
from .aggregator import MetricsAggregator, BudgetStore
from .manager import AlertManager, AlertData

logger = structlog.get_logger(__name__)


def grade_severity(value: float, high: float, critical: float) -> str:
    """按幅度划分级别: > critical 为 critical，> high 为 high，否则 medium"""
    if value > critical:
        return AlertSeverity.CRITICAL.value
    if value > high:
        return AlertSeverity.HIGH.value
    return AlertSeverity.MEDIUM.value


class HeuristicChecker:
    """
    启发式告警检查器

    所有告警都经过 AlertManager.create，因此同样受 24 小时去重约束
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[AlertingSettings] = None,
        aggregator: Optional[MetricsAggregator] = None,
        budgets: Optional[BudgetStore] = None,
        alert_manager: Optional[AlertManager] = None,
    ):
        self.db = db
        self.settings = settings or get_settings().alerting
        self.aggregator = aggregator or MetricsAggregator(db)
        self.budgets = budgets or BudgetStore(db)
        self.alert_manager = alert_manager or AlertManager(db)

    def _create(self, data: AlertData, now: datetime) -> Optional[Alert]:
        try:
            return self.alert_manager.create(data, now=now)
        except AlertingError as e:
            self.db.rollback()
            logger.warning(
                "heuristic_alert_failed",
                user_id=data.user_id,
                alert_type=data.type,
                provider_id=data.provider_id,
                error=str(e),
            )
            return None

    def generate_heuristic_alerts(self, user_id: str, now: Optional[datetime] = None) -> List[Alert]:
        """
        为用户执行全部启发式检测

        Returns:
            新创建的告警（被去重的不包含在内）
        """
        now = now or datetime.utcnow()
        created: List[Alert] = []
        created.extend(self.check_error_rates(user_id, now))
        created.extend(self.check_response_times(user_id, now))
        created.extend(self.check_budgets(user_id, now))

        if created:
            logger.info("heuristic_alerts_generated", user_id=user_id, count=len(created))
        return created

    def check_error_rates(self, user_id: str, now: datetime) -> List[Alert]:
        cfg = self.settings
        since = now - timedelta(minutes=cfg.heuristic_window_minutes)
        created = []

        for provider_id, total, errors in self.aggregator.error_rate_by_provider(user_id, since, now):
            if total < cfg.error_rate_min_samples:
                continue
            rate = errors * 100.0 / total
            if rate <= cfg.error_rate_threshold:
                continue

            alert = self._create(AlertData(
                user_id=user_id,
                provider_id=provider_id,
                type=AlertType.ERROR_RATE.value,
                severity=grade_severity(rate, cfg.error_rate_high, cfg.error_rate_critical),
                title="High Error Rate Detected",
                message=(
                    f"Error rate of {rate:.2f}% detected in the last hour "
                    f"({errors}/{total} requests)"
                ),
                metadata={
                    "error_rate": round(rate, 2),
                    "total_requests": total,
                    "error_requests": errors,
                    "time_window_minutes": cfg.heuristic_window_minutes,
                },
            ), now)
            if alert is not None:
                created.append(alert)

        return created

    def check_response_times(self, user_id: str, now: datetime) -> List[Alert]:
        cfg = self.settings
        since = now - timedelta(minutes=cfg.heuristic_window_minutes)
        created = []

        for provider_id, total, avg_ms in self.aggregator.response_time_by_provider(user_id, since, now):
            if total < cfg.slow_response_min_samples or avg_ms <= cfg.slow_response_threshold_ms:
                continue

            avg_ms = round(avg_ms)
            alert = self._create(AlertData(
                user_id=user_id,
                provider_id=provider_id,
                type=AlertType.SLOW_RESPONSE.value,
                severity=grade_severity(avg_ms, cfg.slow_response_high_ms, cfg.slow_response_critical_ms),
                title="Slow Response Time Detected",
                message=(
                    f"Average response time of {avg_ms}ms detected in the last hour "
                    f"({total} requests)"
                ),
                metadata={
                    "average_response_time": avg_ms,
                    "total_requests": total,
                    "time_window_minutes": cfg.heuristic_window_minutes,
                },
            ), now)
            if alert is not None:
                created.append(alert)

        return created

    def check_budgets(self, user_id: str, now: datetime) -> List[Alert]:
        """
        预算检测

        达到 100% 为 budget_exceeded / critical，
        否则达到告警阈值为 cost_threshold，>= 90% high，其余 medium
        """
        created = []

        for budget in self.budgets.active_budgets(user_id):
            amount = float(budget.amount or 0)
            if amount <= 0:
                continue

            spent = self.budgets.period_spend(budget, now)
            percentage = spent / amount * 100
            threshold = budget.alert_threshold
            if threshold is None:
                threshold = self.settings.default_budget_threshold
            if percentage < threshold:
                continue

            exceeded = percentage >= 100
            if exceeded:
                alert_type = AlertType.BUDGET_EXCEEDED.value
                severity = AlertSeverity.CRITICAL.value
                title = "Budget Exceeded"
                message = (
                    f'Budget "{budget.name}" has been exceeded. '
                    f"Current spending: ${spent:.2f} / ${amount:.2f} ({percentage:.1f}%)"
                )
            else:
                alert_type = AlertType.COST_THRESHOLD.value
                severity = AlertSeverity.HIGH.value if percentage >= 90 else AlertSeverity.MEDIUM.value
                title = "Budget Threshold Reached"
                message = (
                    f'Budget "{budget.name}" is at {percentage:.1f}% of limit. '
                    f"Current spending: ${spent:.2f} / ${amount:.2f}"
                )

            alert = self._create(AlertData(
                user_id=user_id,
                provider_id=budget.provider_id,
                type=alert_type,
                severity=severity,
                title=title,
                message=message,
                metadata={
                    "budget_id": budget.id,
                    "budget_name": budget.name,
                    "current_spending": round(spent, 2),
                    "budget_amount": amount,
                    "percentage": round(percentage),
                    "period": budget.period,
                },
            ), now)
            if alert is not None:
                created.append(alert)

        return created
