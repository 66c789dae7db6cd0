"""
告警规则相关数据模型
"""
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from db.models import AlertType, AlertSeverity
from .response import PaginationInfo


class RuleCreate(BaseModel):
    """
    创建规则请求

    conditions 示例:
    {
        "metric": "error_rate",
        "operator": "gt",
        "threshold": 10,
        "time_window_minutes": 60,
        "aggregation": "avg",
        "minimum_data_points": 10
    }
    """
    name: str = Field(..., min_length=1, max_length=255, description="规则名称")
    description: Optional[str] = Field(None, description="规则描述")
    type: AlertType = Field(..., description="告警类型")
    severity: AlertSeverity = Field(..., description="告警级别")
    conditions: Dict[str, Any] = Field(..., description="触发条件")
    provider_id: Optional[str] = Field(None, description="限定 API 提供方")
    is_active: bool = Field(True, description="是否启用")
    cooldown_minutes: int = Field(60, ge=0, description="冷却时间（分钟）")


class RuleUpdate(BaseModel):
    """更新规则请求（只更新给出的字段）"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[AlertType] = None
    severity: Optional[AlertSeverity] = None
    conditions: Optional[Dict[str, Any]] = None
    provider_id: Optional[str] = None
    is_active: Optional[bool] = None
    cooldown_minutes: Optional[int] = Field(None, ge=0)


class RuleInfo(BaseModel):
    """规则信息"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    provider_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    type: str
    severity: str
    conditions: Dict[str, Any]
    is_active: bool
    cooldown_minutes: int
    last_triggered: Optional[datetime] = None
    trigger_count: int
    created_at: datetime
    updated_at: datetime


class RuleListResponse(BaseModel):
    items: List[RuleInfo]
    pagination: PaginationInfo


class RuleTestResult(BaseModel):
    """规则试运行结果"""
    rule_id: str
    triggered: bool
    threshold: Optional[float] = None
    current_value: Optional[float] = None
    alert_created: bool = False
    alert_id: Optional[str] = None
    error: Optional[str] = None


class RuleStats(BaseModel):
    total_rules: int
    active_rules: int
    triggered_today: int
    triggered_this_week: int
    by_type: Dict[str, int]
    by_severity: Dict[str, int]
