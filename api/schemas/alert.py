"""
告警相关数据模型
"""
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from db.models import AlertType, AlertSeverity
from .response import PaginationInfo


class AlertInfo(BaseModel):
    """告警信息"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="告警 ID")
    user_id: str = Field(..., description="用户 ID")
    provider_id: Optional[str] = Field(None, description="API 提供方 ID")
    type: str = Field(..., description="告警类型")
    severity: str = Field(..., description="告警级别")
    title: str = Field(..., description="标题")
    message: str = Field(..., description="消息")
    # ORM 模型上 metadata 为 SQLAlchemy 保留名，列属性为 metadata_
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
        description="附加信息",
    )
    is_read: bool = Field(..., description="是否已读")
    is_resolved: bool = Field(..., description="是否已解决")
    resolved_at: Optional[datetime] = Field(None, description="解决时间")
    created_at: datetime = Field(..., description="创建时间")


class AlertListResponse(BaseModel):
    """告警列表响应"""
    items: List[AlertInfo] = Field(..., description="告警列表")
    pagination: PaginationInfo = Field(..., description="分页信息")


class AlertStats(BaseModel):
    """告警统计"""
    total: int
    unread: int
    unresolved: int
    recent_count: int = Field(..., description="最近 24 小时新增")
    by_type: Dict[str, int]
    by_severity: Dict[str, int]


class AlertIdsRequest(BaseModel):
    """批量操作请求"""
    alert_ids: List[str] = Field(..., min_length=1, max_length=500, description="告警 ID 列表")


class MarkAllReadRequest(BaseModel):
    provider_id: Optional[str] = Field(None, description="只标记该提供方的告警")


class BulkUpdateResponse(BaseModel):
    updated: int = Field(..., description="受影响的告警数")


class GenerateAlertsResponse(BaseModel):
    """启发式检测结果"""
    created: int = Field(..., description="新建告警数")
    alerts: List[AlertInfo] = Field(default_factory=list)


class AlertQuery(BaseModel):
    """告警列表过滤条件"""
    provider_id: Optional[str] = None
    type: Optional[AlertType] = None
    severity: Optional[AlertSeverity] = None
    is_read: Optional[bool] = None
    is_resolved: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def filters(self) -> Dict[str, Any]:
        return {
            key: (value.value if hasattr(value, "value") else value)
            for key, value in self.model_dump().items()
            if value is not None
        }
