# 数据库模块
from .database import SessionLocal, Base, init_engine, get_engine, get_session_factory, create_tables
from .models import (
    AlertRule,
    Alert,
    NotificationChannel,
    AlertDelivery,
    UserNotificationPreference,
    NotificationTemplate,
    ApiProvider,
    ApiMetric,
    CostBudget,
)

__all__ = [
    "SessionLocal",
    "Base",
    "init_engine",
    "get_engine",
    "get_session_factory",
    "create_tables",
    "AlertRule",
    "Alert",
    "NotificationChannel",
    "AlertDelivery",
    "UserNotificationPreference",
    "NotificationTemplate",
    "ApiProvider",
    "ApiMetric",
    "CostBudget",
]
