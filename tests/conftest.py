"""
pytest 配置

测试使用 SQLite 内存数据库（StaticPool 保证所有会话共享同一连接）
"""
import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("JOBS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture(scope="session")
def test_settings():
    """测试配置"""
    from core.config import Settings
    return Settings()


@pytest.fixture(scope="function")
def engine():
    from db.database import Base, init_engine
    from db import models  # noqa: F401

    engine = init_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    from db.database import get_session_factory
    return get_session_factory()


@pytest.fixture(scope="function")
def db_session(session_factory):
    """数据库会话 fixture，每个测试使用独立的空库"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider(db_session):
    from db.models import ApiProvider

    p = ApiProvider(id="openai", name="openai", display_name="OpenAI")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def add_metrics(db_session):
    """
    批量写入调用记录

    add_metrics("user_1", "openai", statuses=[200, 500], response_time=120, cost=0.5)
    """
    from db.models import ApiMetric

    def _add(user_id, provider_id, statuses, response_time=100, cost=None, at=None):
        at = at or datetime.utcnow() - timedelta(minutes=5)
        rows = [
            ApiMetric(
                user_id=user_id,
                provider_id=provider_id,
                endpoint="/v1/chat/completions",
                method="POST",
                status_code=status,
                response_time=response_time,
                cost=cost,
                timestamp=at,
            )
            for status in statuses
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _add


@pytest.fixture
def make_channel(db_session):
    """创建渠道（默认已验证、启用）"""
    from db.models import NotificationChannel

    def _make(user_id="user_1", type="in_app", config=None, **fields):
        fields.setdefault("is_verified", True)
        channel = NotificationChannel(
            user_id=user_id,
            name=f"{type} channel",
            type=type,
            config=config or {},
            **fields,
        )
        db_session.add(channel)
        db_session.commit()
        return channel

    return _make


@pytest.fixture
def make_alert(db_session):
    from db.models import Alert

    def _make(user_id="user_1", type="error_rate", severity="high", provider_id=None, **fields):
        alert = Alert(
            user_id=user_id,
            provider_id=provider_id,
            type=type,
            severity=severity,
            title=fields.pop("title", "High Error Rate Detected"),
            message=fields.pop("message", "Error rate of 12.00% detected"),
            metadata_=fields.pop("metadata_", {}),
            **fields,
        )
        db_session.add(alert)
        db_session.commit()
        return alert

    return _make
