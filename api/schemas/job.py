"""
后台任务相关数据模型
"""
from datetime import datetime
from typing import Optional, List, Dict

from pydantic import BaseModel, Field


class JobResultInfo(BaseModel):
    """单次执行结果"""
    job: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    alerts_created: int = 0
    details: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    skipped: bool = False
    execution_time_ms: float = 0.0


class JobStatusInfo(BaseModel):
    name: str
    is_running: bool
    last_run: Optional[datetime] = None
    scheduled: bool
    interval_minutes: Optional[float] = None
    last_result: Optional[JobResultInfo] = None


class JobRestartRequest(BaseModel):
    interval_minutes: float = Field(..., gt=0, le=7 * 24 * 60, description="执行间隔（分钟）")
