"""
数据库连接配置

引擎按需创建：服务进程使用配置中的连接串，测试可通过 init_engine 注入 SQLite。
"""
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from core.config import get_settings

# 声明基类
Base = declarative_base()

# 创建会话工厂（在 init_engine 中绑定）
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

_engine: Optional[Engine] = None


def init_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """
    创建数据库引擎并绑定会话工厂

    Args:
        url: 连接串，缺省使用配置
        **kwargs: 透传给 create_engine
    """
    global _engine
    settings = get_settings()
    url = url or settings.database.url

    options = {
        "pool_pre_ping": True,  # 连接健康检查
        "echo": settings.debug,  # 调试模式下打印 SQL
    }
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
        )
    options.update(kwargs)

    _engine = create_engine(url, **options)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    """获取引擎，首次调用时按配置创建"""
    if _engine is None:
        return init_engine()
    return _engine


def create_tables() -> None:
    """按模型创建全部表（开发环境使用，生产由迁移管理）"""
    from db import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def get_session_factory() -> sessionmaker:
    """获取已绑定引擎的会话工厂"""
    get_engine()
    return SessionLocal
