# API Pydantic 数据模型
from .response import APIResponse, PaginationInfo, success_response, error_response
from .alert import AlertInfo, AlertListResponse, AlertStats, AlertIdsRequest, AlertQuery
from .rule import RuleCreate, RuleUpdate, RuleInfo, RuleListResponse, RuleTestResult, RuleStats
from .channel import (
    ChannelCreate,
    ChannelUpdate,
    ChannelInfo,
    ChannelTestResult,
    DeliveryInfo,
    PreferenceCreate,
    PreferenceInfo,
)
from .job import JobResultInfo, JobStatusInfo, JobRestartRequest

__all__ = [
    "APIResponse",
    "PaginationInfo",
    "success_response",
    "error_response",
    "AlertInfo",
    "AlertListResponse",
    "AlertStats",
    "AlertIdsRequest",
    "AlertQuery",
    "RuleCreate",
    "RuleUpdate",
    "RuleInfo",
    "RuleListResponse",
    "RuleTestResult",
    "RuleStats",
    "ChannelCreate",
    "ChannelUpdate",
    "ChannelInfo",
    "ChannelTestResult",
    "DeliveryInfo",
    "PreferenceCreate",
    "PreferenceInfo",
    "JobResultInfo",
    "JobStatusInfo",
    "JobRestartRequest",
]
