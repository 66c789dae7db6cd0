"""
数据库模型定义

自有表: alert_rules, alerts, notification_channels, alert_deliveries,
user_notification_preferences, notification_templates
外部只读表: api_providers, api_metrics, cost_budgets
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, JSON, ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_id(prefix: str) -> str:
    """生成带前缀的 ID，如 alert_3f9c0a1b2d4e"""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


# ===== 枚举类型 =====

class AlertType(str, enum.Enum):
    COST_THRESHOLD = "cost_threshold"
    RATE_LIMIT = "rate_limit"
    ERROR_RATE = "error_rate"
    DOWNTIME = "downtime"
    SLOW_RESPONSE = "slow_response"
    BUDGET_EXCEEDED = "budget_exceeded"


class AlertSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChannelType(str, enum.Enum):
    EMAIL = "email"
    WEBHOOK = "webhook"
    SLACK = "slack"
    DISCORD = "discord"
    TEAMS = "teams"
    IN_APP = "in_app"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SENT = "sent"
    FAILED = "failed"


class RuleMetric(str, enum.Enum):
    ERROR_RATE = "error_rate"
    RESPONSE_TIME = "response_time"
    COST = "cost"
    REQUEST_COUNT = "request_count"
    SUCCESS_RATE = "success_rate"


class ConditionOperator(str, enum.Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"


class Aggregation(str, enum.Enum):
    AVG = "avg"
    SUM = "sum"
    COUNT = "count"
    MAX = "max"
    MIN = "min"


# ===== 外部表（只读） =====

class ApiProvider(Base):
    """第三方 API 提供方"""
    __tablename__ = "api_providers"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    display_name = Column(String(200), nullable=True)


class ApiMetric(Base):
    """
    API 调用记录

    追加写入的时间序列，由采集端维护
    """
    __tablename__ = "api_metrics"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("metric"))
    provider_id = Column(String(64), ForeignKey("api_providers.id"), nullable=False)
    user_id = Column(String(64), nullable=False)
    endpoint = Column(String(500), nullable=False, default="/")
    method = Column(String(10), nullable=False, default="GET")
    status_code = Column(Integer, nullable=False)
    response_time = Column(Integer, nullable=True)  # ms
    cost = Column(Float, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_api_metrics_user_timestamp", "user_id", "timestamp"),
    )


class CostBudget(Base):
    """成本预算"""
    __tablename__ = "cost_budgets"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("budget"))
    user_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), ForeignKey("api_providers.id"), nullable=True)
    name = Column(String(200), nullable=False)
    amount = Column(Float, nullable=False)
    period = Column(String(20), nullable=False, default="monthly")  # daily, weekly, monthly, yearly
    alert_threshold = Column(Float, nullable=True)  # 百分比 0-100
    is_active = Column(Boolean, nullable=False, default=True)


# ===== 告警与通知 =====

class AlertRule(Base):
    """
    告警规则表

    conditions: {"metric", "operator", "threshold", "time_window_minutes",
                 "aggregation"?, "minimum_data_points"?}
    """
    __tablename__ = "alert_rules"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("rule"))
    user_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), ForeignKey("api_providers.id"), nullable=True, index=True)

    # 规则信息
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(32), nullable=False, index=True)
    severity = Column(String(16), nullable=False)
    conditions = Column(JSON, nullable=False)

    # 状态
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    cooldown_minutes = Column(Integer, nullable=False, default=60)
    last_triggered = Column(DateTime, nullable=True, index=True)
    trigger_count = Column(Integer, nullable=False, default=0)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Alert(Base):
    """告警记录表"""
    __tablename__ = "alerts"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("alert"))
    user_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), ForeignKey("api_providers.id"), nullable=True)

    # 告警信息
    type = Column(String(32), nullable=False, index=True)
    severity = Column(String(16), nullable=False)
    title = Column(String(500), nullable=False)
    message = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=True)

    # 状态
    is_read = Column(Boolean, nullable=False, default=False)
    is_resolved = Column(Boolean, nullable=False, default=False, index=True)
    resolved_at = Column(DateTime, nullable=True)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # 关系
    deliveries = relationship(
        "AlertDelivery", back_populates="alert", cascade="all, delete-orphan",
    )

    # 索引
    __table_args__ = (
        Index("ix_alerts_dedup", "user_id", "provider_id", "type", "is_resolved", "created_at"),
    )


class NotificationChannel(Base):
    """
    通知渠道表

    config 按 type 区分结构，见 core/notifications/config.py
    """
    __tablename__ = "notification_channels"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("channel"))
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False, index=True)
    config = Column(JSON, nullable=False, default=dict)

    # 状态
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_verified = Column(Boolean, nullable=False, default=False, index=True)
    last_used = Column(DateTime, nullable=True)
    failure_count = Column(Integer, nullable=False, default=0)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    deliveries = relationship(
        "AlertDelivery", back_populates="channel", cascade="all, delete-orphan",
    )
    preferences = relationship(
        "UserNotificationPreference", back_populates="channel", cascade="all, delete-orphan",
    )


class AlertDelivery(Base):
    """
    告警投递记录

    每个 (告警, 渠道) 一条，状态机见 core/notifications/lifecycle.py
    """
    __tablename__ = "alert_deliveries"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("delivery"))
    alert_id = Column(String(64), ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    channel_id = Column(
        String(64), ForeignKey("notification_channels.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    status = Column(String(16), nullable=False, default=DeliveryStatus.PENDING.value, index=True)
    attempt = Column(Integer, nullable=False, default=1)
    max_attempts = Column(Integer, nullable=False, default=3)
    error = Column(Text, nullable=True)
    response = Column(JSON, nullable=True)

    sent_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True, index=True)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    alert = relationship("Alert", back_populates="deliveries")
    channel = relationship("NotificationChannel", back_populates="deliveries")


class UserNotificationPreference(Base):
    """用户通知偏好：(告警类型, 级别) -> 渠道"""
    __tablename__ = "user_notification_preferences"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("pref"))
    user_id = Column(String(64), nullable=False, index=True)
    alert_type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    channel_id = Column(
        String(64), ForeignKey("notification_channels.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    is_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    channel = relationship("NotificationChannel", back_populates="preferences")

    __table_args__ = (
        Index("ix_preferences_type_severity", "alert_type", "severity"),
    )


class NotificationTemplate(Base):
    """通知模板（覆盖内置默认模板）"""
    __tablename__ = "notification_templates"

    id = Column(String(64), primary_key=True, default=lambda: generate_id("tmpl"))
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False)  # 渠道类型
    alert_type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    subject = Column(String(500), nullable=True)  # 仅邮件
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_templates_lookup", "type", "alert_type", "severity"),
    )
