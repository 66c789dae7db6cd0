"""
指标聚合

从 api_metrics / cost_budgets 只读查询，为规则评估和启发式检测提供数值
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List, Tuple

from sqlalchemy import func, case
from sqlalchemy.orm import Session
import structlog

from db.models import ApiMetric, CostBudget, RuleMetric, Aggregation

logger = structlog.get_logger(__name__)


@dataclass
class MetricAggregate:
    """聚合结果"""
    value: float
    sample_count: int

    def to_dict(self) -> dict:
        return {"value": self.value, "sample_count": self.sample_count}


def empty_aggregate() -> MetricAggregate:
    return MetricAggregate(value=0.0, sample_count=0)


class MetricsAggregator:
    """
    指标聚合器

    指标口径:
    - error_rate: status_code >= 400 的请求占比 (0-100)
    - success_rate: 100 - error_rate
    - response_time: 响应时间 (ms)，默认取平均
    - cost: 成本，默认求和
    - request_count: 每分钟请求数；aggregation 为 count/sum 时返回原始计数
    """

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self, columns, user_id: str, since: datetime, until: datetime, provider_id: Optional[str]):
        query = self.db.query(*columns).filter(
            ApiMetric.user_id == user_id,
            ApiMetric.timestamp >= since,
            ApiMetric.timestamp <= until,
        )
        if provider_id:
            query = query.filter(ApiMetric.provider_id == provider_id)
        return query

    def aggregate(
        self,
        user_id: str,
        metric: str,
        window_minutes: int,
        provider_id: Optional[str] = None,
        aggregation: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MetricAggregate:
        """
        计算窗口内的指标值

        Args:
            user_id: 用户 ID
            metric: RuleMetric 取值
            window_minutes: 回溯窗口（分钟）
            provider_id: 限定提供方（None 表示全部）
            aggregation: 聚合方式（可选）
            now: 当前时间（测试注入）

        Returns:
            MetricAggregate，窗口内没有样本时 value=0, sample_count=0
        """
        now = now or datetime.utcnow()
        since = now - timedelta(minutes=window_minutes)
        metric = RuleMetric(metric)

        if metric in (RuleMetric.ERROR_RATE, RuleMetric.SUCCESS_RATE):
            return self._error_rate(user_id, since, now, provider_id, success=metric == RuleMetric.SUCCESS_RATE)
        if metric == RuleMetric.RESPONSE_TIME:
            return self._numeric(
                ApiMetric.response_time, user_id, since, now, provider_id,
                Aggregation(aggregation) if aggregation else Aggregation.AVG,
            )
        if metric == RuleMetric.COST:
            return self._numeric(
                ApiMetric.cost, user_id, since, now, provider_id,
                Aggregation(aggregation) if aggregation else Aggregation.SUM,
            )
        return self._request_count(user_id, since, now, provider_id, window_minutes, aggregation)

    def _error_rate(
        self, user_id: str, since: datetime, until: datetime, provider_id: Optional[str], success: bool,
    ) -> MetricAggregate:
        total, errors = self._base_query(
            [
                func.count(ApiMetric.id),
                func.sum(case((ApiMetric.status_code >= 400, 1), else_=0)),
            ],
            user_id, since, until, provider_id,
        ).one()

        total = total or 0
        if total == 0:
            return empty_aggregate()

        error_rate = (errors or 0) * 100.0 / total
        value = 100.0 - error_rate if success else error_rate
        return MetricAggregate(value=value, sample_count=total)

    def _numeric(
        self,
        column,
        user_id: str,
        since: datetime,
        until: datetime,
        provider_id: Optional[str],
        aggregation: Aggregation,
    ) -> MetricAggregate:
        funcs = {
            Aggregation.AVG: func.avg,
            Aggregation.SUM: func.sum,
            Aggregation.MAX: func.max,
            Aggregation.MIN: func.min,
            Aggregation.COUNT: func.count,
        }
        value, samples = self._base_query(
            [funcs[aggregation](column), func.count(column)],
            user_id, since, until, provider_id,
        ).filter(column.isnot(None)).one()

        if not samples:
            return empty_aggregate()
        return MetricAggregate(value=float(value or 0), sample_count=samples)

    def _request_count(
        self,
        user_id: str,
        since: datetime,
        until: datetime,
        provider_id: Optional[str],
        window_minutes: int,
        aggregation: Optional[str],
    ) -> MetricAggregate:
        total = self._base_query(
            [func.count(ApiMetric.id)], user_id, since, until, provider_id,
        ).scalar() or 0

        if total == 0:
            return empty_aggregate()
        if aggregation in (Aggregation.COUNT.value, Aggregation.SUM.value):
            return MetricAggregate(value=float(total), sample_count=total)
        return MetricAggregate(value=total / window_minutes, sample_count=total)

    # ===== 按提供方分组（启发式检测） =====

    def error_rate_by_provider(
        self, user_id: str, since: datetime, until: Optional[datetime] = None,
    ) -> List[Tuple[str, int, int]]:
        """
        按提供方统计错误数

        Returns:
            [(provider_id, total, errors)]
        """
        rows = self.db.query(
            ApiMetric.provider_id,
            func.count(ApiMetric.id),
            func.sum(case((ApiMetric.status_code >= 400, 1), else_=0)),
        ).filter(
            ApiMetric.user_id == user_id,
            ApiMetric.timestamp >= since,
            ApiMetric.timestamp <= (until or datetime.utcnow()),
        ).group_by(ApiMetric.provider_id).all()

        return [(provider_id, total, errors or 0) for provider_id, total, errors in rows]

    def response_time_by_provider(
        self, user_id: str, since: datetime, until: Optional[datetime] = None,
    ) -> List[Tuple[str, int, float]]:
        """
        按提供方统计平均响应时间

        Returns:
            [(provider_id, total, avg_ms)]
        """
        rows = self.db.query(
            ApiMetric.provider_id,
            func.count(ApiMetric.id),
            func.avg(ApiMetric.response_time),
        ).filter(
            ApiMetric.user_id == user_id,
            ApiMetric.timestamp >= since,
            ApiMetric.timestamp <= (until or datetime.utcnow()),
            ApiMetric.response_time.isnot(None),
        ).group_by(ApiMetric.provider_id).all()

        return [(provider_id, total, float(avg or 0)) for provider_id, total, avg in rows]

    def users_with_metrics(self, since: datetime) -> List[str]:
        """窗口内有调用记录的用户"""
        rows = self.db.query(ApiMetric.user_id) \
            .filter(ApiMetric.timestamp >= since) \
            .distinct() \
            .all()
        return [row[0] for row in rows]


def period_start(period: str, now: datetime) -> datetime:
    """
    计算预算周期起点

    weekly 以周日为一周开始，未知周期按 daily 处理
    """
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "weekly":
        # weekday(): 周一=0 ... 周日=6
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if period == "monthly":
        return today.replace(day=1)
    if period == "yearly":
        return today.replace(month=1, day=1)
    return today


class BudgetStore:
    """预算读取"""

    def __init__(self, db: Session):
        self.db = db

    def active_budgets(self, user_id: str) -> List[CostBudget]:
        return self.db.query(CostBudget) \
            .filter(CostBudget.user_id == user_id, CostBudget.is_active.is_(True)) \
            .all()

    def users_with_budgets(self) -> List[str]:
        rows = self.db.query(CostBudget.user_id) \
            .filter(CostBudget.is_active.is_(True)) \
            .distinct() \
            .all()
        return [row[0] for row in rows]

    def period_spend(self, budget: CostBudget, now: Optional[datetime] = None) -> float:
        """当前周期内的累计花费"""
        now = now or datetime.utcnow()
        query = self.db.query(func.coalesce(func.sum(ApiMetric.cost), 0.0)).filter(
            ApiMetric.user_id == budget.user_id,
            ApiMetric.timestamp >= period_start(budget.period, now),
            ApiMetric.timestamp <= now,
        )
        if budget.provider_id:
            query = query.filter(ApiMetric.provider_id == budget.provider_id)

        return float(query.scalar() or 0)
