# 告警模块
from .aggregator import MetricsAggregator, MetricAggregate, BudgetStore, period_start
from .manager import AlertManager, AlertData
from .rules import AlertRuleEngine, RuleConditions, RuleEvaluationResult, parse_conditions
from .checker import HeuristicChecker, grade_severity
from .notifier import AlertNotifier

__all__ = [
    "MetricsAggregator",
    "MetricAggregate",
    "BudgetStore",
    "period_start",
    "AlertManager",
    "AlertData",
    "AlertRuleEngine",
    "RuleConditions",
    "RuleEvaluationResult",
    "parse_conditions",
    "HeuristicChecker",
    "grade_severity",
    "AlertNotifier",
]
