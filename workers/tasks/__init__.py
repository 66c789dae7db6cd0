# Workers 任务模块
from .alerting import (
    evaluate_alert_rules,
    generate_heuristic_alerts,
    deliver_notifications,
    cleanup,
)

__all__ = [
    "evaluate_alert_rules",
    "generate_heuristic_alerts",
    "deliver_notifications",
    "cleanup",
]
