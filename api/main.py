"""
FastAPI 应用主入口
"""
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routers import alerts, rules, notifications, jobs
from api.middleware.logging import LoggingMiddleware
from api.middleware.error_handler import register_exception_handlers
from api.schemas.response import success_response
from core.config import get_settings
from core.scheduler import get_job_manager
from db.database import get_engine
from logging_config import setup_logging, get_logger

# 获取配置
settings = get_settings()

# 配置日志
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    启动时初始化数据库引擎，JOBS_ENABLED=true 时在进程内启动后台任务；
    关闭时停止任务并释放连接池
    """
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    app.state.start_time = datetime.utcnow()
    engine = get_engine()

    job_manager = None
    if settings.jobs.enabled:
        job_manager = get_job_manager()
        job_manager.start_all()

    logger.info("application_started", jobs_enabled=settings.jobs.enabled)

    yield

    logger.info("application_shutting_down")
    if job_manager is not None:
        await job_manager.stop_all()
    engine.dispose()
    logger.info("application_stopped")


# 创建 FastAPI 应用
app = FastAPI(
    title=settings.app_name,
    description="Nexus Alerts - API usage and cost alerting with multi-channel notifications",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# ===== 中间件 =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 请求日志
app.add_middleware(LoggingMiddleware)

# 全局异常处理
register_exception_handlers(app)


# ===== 路由 =====

API_PREFIX = settings.api_prefix


@app.get("/health")
async def health_check_root():
    """根路径健康检查"""
    return success_response(
        data={
            "status": "healthy",
            "version": settings.app_version,
        }
    )


@app.get(f"{API_PREFIX}/health")
async def health_check():
    """API 健康检查"""
    uptime = (datetime.utcnow() - app.state.start_time).total_seconds() if hasattr(app.state, "start_time") else 0

    return success_response(
        data={
            "status": "healthy",
            "version": settings.app_version,
            "uptime_seconds": round(uptime, 2),
            "environment": settings.environment,
            "jobs_enabled": settings.jobs.enabled,
        }
    )


# 规则路由须先于 /alerts/{alert_id} 注册
app.include_router(rules.router, prefix=f"{API_PREFIX}/alerts/rules", tags=["Alert Rules"])
app.include_router(alerts.router, prefix=f"{API_PREFIX}/alerts", tags=["Alerts"])
app.include_router(notifications.router, prefix=f"{API_PREFIX}/notifications", tags=["Notifications"])
app.include_router(jobs.router, prefix=f"{API_PREFIX}/admin/jobs", tags=["Jobs"])


# ===== 开发模式入口 =====

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
