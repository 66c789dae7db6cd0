"""
通知渠道相关数据模型
"""
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from db.models import AlertType, AlertSeverity, ChannelType, DeliveryStatus

# 响应中不回显的配置字段
SECRET_FIELDS = {"secret"}


class ChannelCreate(BaseModel):
    """
    创建渠道请求

    config 按类型:
    - email: {"address": "ops@example.com"}
    - webhook: {"url": "...", "secret": "...", "headers": {...}, "method": "POST"}
    - slack / discord / teams: {"webhookUrl": "..."}
    - in_app: {}
    """
    name: str = Field(..., min_length=1, max_length=255, description="渠道名称")
    type: ChannelType = Field(..., description="渠道类型")
    config: Dict[str, Any] = Field(default_factory=dict, description="渠道配置")


class ChannelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class ChannelInfo(BaseModel):
    """渠道信息"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    type: str
    config: Dict[str, Any]
    is_active: bool
    is_verified: bool
    last_used: Optional[datetime] = None
    failure_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_channel(cls, channel) -> "ChannelInfo":
        info = cls.model_validate(channel)
        info.config = {
            key: ("***" if key in SECRET_FIELDS and value else value)
            for key, value in (info.config or {}).items()
        }
        return info


class ChannelTestResult(BaseModel):
    """测试发送结果"""
    success: bool
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None
    should_retry: bool = False


class DeliveryInfo(BaseModel):
    """投递记录"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    alert_id: str
    channel_id: str
    status: str
    attempt: int
    max_attempts: int
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None
    sent_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DeliveryQuery(BaseModel):
    channel_id: Optional[str] = None
    status: Optional[DeliveryStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=500)


class RetryResponse(BaseModel):
    requeued: int = Field(..., description="重新排队的投递数")


class PreferenceCreate(BaseModel):
    """设置偏好请求"""
    alert_type: AlertType
    severity: AlertSeverity
    channel_id: str
    is_enabled: bool = True


class PreferenceInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    alert_type: str
    severity: str
    channel_id: str
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


class ChannelListResponse(BaseModel):
    items: List[ChannelInfo]
    total: int
