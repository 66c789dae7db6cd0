"""
FastAPI 依赖注入
"""
from typing import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from alerts import AlertManager, AlertNotifier, AlertRuleEngine, HeuristicChecker
from core.notifications import ChannelService, NotificationRouter
from core.scheduler import JobManager, get_job_manager
from db.database import get_session_factory


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话

    使用方式:
    @app.get("/example")
    def example(db: Session = Depends(get_db)):
        ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id", min_length=1)) -> str:
    """调用方用户 ID（认证由上游网关负责）"""
    return x_user_id


def get_alert_manager(db: Session = Depends(get_db)) -> AlertManager:
    return AlertManager(db)


def get_rule_engine(db: Session = Depends(get_db)) -> AlertRuleEngine:
    return AlertRuleEngine(db)


def get_heuristic_checker(db: Session = Depends(get_db)) -> HeuristicChecker:
    return HeuristicChecker(db)


def get_notifier(db: Session = Depends(get_db)) -> AlertNotifier:
    return AlertNotifier(db)


def get_channel_service(db: Session = Depends(get_db)) -> ChannelService:
    return ChannelService(db)


def get_notification_router(db: Session = Depends(get_db)) -> NotificationRouter:
    return NotificationRouter(db)


def get_jobs() -> JobManager:
    """获取任务管理器"""
    return get_job_manager()
