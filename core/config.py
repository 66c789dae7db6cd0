"""
配置管理系统

支持:
1. 环境变量读取
2. .env 文件
3. 类型验证
4. 敏感信息脱敏
"""
from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """数据库配置"""
    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore"
    )

    host: str = Field(default="localhost", description="数据库主机")
    port: int = Field(default=5432, ge=1, le=65535, description="数据库端口")
    user: str = Field(default="nexus", description="数据库用户")
    password: str = Field(default="", description="数据库密码")
    name: str = Field(default="nexus_alerts", description="数据库名称")
    dsn: Optional[str] = Field(default=None, description="完整连接串（覆盖上面的字段）")

    pool_size: int = Field(default=5, ge=1, le=20, description="连接池大小")
    max_overflow: int = Field(default=10, ge=0, le=50, description="最大溢出连接数")
    pool_timeout: int = Field(default=30, ge=5, description="连接超时（秒）")

    @property
    def url(self) -> str:
        """构建数据库连接 URL"""
        if self.dsn:
            return self.dsn
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Redis 配置"""
    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore"
    )

    host: str = Field(default="localhost", description="Redis 主机")
    port: int = Field(default=6379, ge=1, le=65535, description="Redis 端口")
    password: Optional[str] = Field(default=None, description="Redis 密码")
    db: int = Field(default=0, ge=0, le=15, description="Redis 数据库编号")

    @property
    def url(self) -> str:
        """构建 Redis 连接 URL"""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class CelerySettings(BaseSettings):
    """Celery 配置"""
    model_config = SettingsConfigDict(
        env_prefix="CELERY_",
        extra="ignore"
    )

    broker_url: Optional[str] = Field(default=None, description="Broker URL（覆盖 Redis）")
    result_backend: Optional[str] = Field(default=None, description="结果后端 URL")

    task_soft_timeout: int = Field(default=600, ge=60, description="任务软超时（秒）")
    task_hard_timeout: int = Field(default=900, ge=120, description="任务硬超时（秒）")


class LoggingSettings(BaseSettings):
    """日志配置"""
    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore"
    )

    level: str = Field(default="INFO", description="日志级别")
    format: str = Field(default="auto", description="日志格式: json, console, auto")
    file_path: Optional[str] = Field(default=None, description="日志文件路径")
    max_size_mb: int = Field(default=100, ge=1, le=1000, description="日志文件最大大小 (MB)")
    backup_count: int = Field(default=7, ge=1, le=30, description="保留日志文件数")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"日志级别必须是 {allowed} 之一")
        return v

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        allowed = {"json", "console", "auto"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"日志格式必须是 {allowed} 之一")
        return v


class NotificationSettings(BaseSettings):
    """通知投递配置"""
    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        extra="ignore"
    )

    dashboard_url: str = Field(default="http://localhost:3000", description="仪表盘地址，用于生成告警链接")
    user_agent: str = Field(default="Nexus-Dashboard/1.0", description="出站请求 User-Agent")
    http_timeout: float = Field(default=30.0, gt=0, description="出站 HTTP 超时（秒）")

    max_attempts: int = Field(default=3, ge=1, le=10, description="单次投递最大尝试次数")
    batch_size: int = Field(default=100, ge=1, le=1000, description="每轮投递批量")
    channel_failure_threshold: int = Field(default=5, ge=1, description="连续失败多少次后停用渠道")

    # SMTP
    smtp_host: Optional[str] = Field(default=None, description="SMTP 主机")
    smtp_port: int = Field(default=587, ge=1, le=65535, description="SMTP 端口")
    smtp_username: Optional[str] = Field(default=None, description="SMTP 用户名")
    smtp_password: Optional[str] = Field(default=None, description="SMTP 密码")
    smtp_use_tls: bool = Field(default=True, description="是否启用 STARTTLS")
    email_from: str = Field(default="alerts@nexus.local", description="发件人地址")


class AlertingSettings(BaseSettings):
    """告警评估配置"""
    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        extra="ignore"
    )

    dedup_window_hours: int = Field(default=24, ge=1, description="去重窗口（小时）")

    # 启发式检测阈值
    error_rate_threshold: float = Field(default=10.0, ge=0, description="错误率阈值 (%)")
    error_rate_min_samples: int = Field(default=10, ge=1, description="错误率检测最少样本数")
    error_rate_high: float = Field(default=15.0, ge=0, description="错误率 high 级别下限 (%)")
    error_rate_critical: float = Field(default=25.0, ge=0, description="错误率 critical 级别下限 (%)")

    slow_response_threshold_ms: float = Field(default=5000, ge=0, description="慢响应阈值 (ms)")
    slow_response_min_samples: int = Field(default=5, ge=1, description="慢响应检测最少样本数")
    slow_response_high_ms: float = Field(default=15000, ge=0, description="慢响应 high 级别下限 (ms)")
    slow_response_critical_ms: float = Field(default=30000, ge=0, description="慢响应 critical 级别下限 (ms)")

    default_budget_threshold: float = Field(default=80.0, ge=0, le=100, description="预算默认告警阈值 (%)")
    heuristic_window_minutes: int = Field(default=60, ge=1, description="启发式检测窗口（分钟）")


class JobSettings(BaseSettings):
    """后台任务配置"""
    model_config = SettingsConfigDict(
        env_prefix="JOBS_",
        extra="ignore"
    )

    enabled: bool = Field(default=False, description="是否在服务进程内启动后台任务")
    lock_backend: str = Field(default="local", description="任务互斥锁: local, redis")

    alert_evaluation_minutes: float = Field(default=1, gt=0, description="规则评估间隔（分钟）")
    notification_delivery_minutes: float = Field(default=2, gt=0, description="通知投递间隔（分钟）")
    cleanup_hours: float = Field(default=24, gt=0, description="清理间隔（小时）")
    auto_alert_minutes: float = Field(default=15, gt=0, description="启发式告警间隔（分钟）")

    alert_retention_days: int = Field(default=30, ge=1, description="已解决告警保留天数")
    rule_inactive_days: int = Field(default=90, ge=1, description="停用规则保留天数")
    delivery_retention_days: int = Field(default=30, ge=1, description="投递记录保留天数")

    @field_validator("lock_backend")
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        allowed = {"local", "redis"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"锁后端必须是 {allowed} 之一")
        return v


class Settings(BaseSettings):
    """
    主配置类

    层级:
    1. 环境变量 (最高优先级)
    2. .env 文件
    3. 默认值 (最低优先级)

    使用示例:
    >>> settings = Settings()
    >>> print(settings.database.url)
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 应用基础配置
    app_name: str = Field(default="NexusAlerts", description="应用名称")
    app_version: str = Field(default="0.1.0", description="应用版本")
    debug: bool = Field(default=False, description="调试模式")
    environment: str = Field(default="development", description="运行环境: development, staging, production")

    # API 配置
    api_host: str = Field(default="0.0.0.0", description="API 监听地址")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API 监听端口")
    api_prefix: str = Field(default="/api/v1", description="API 路径前缀")
    cors_origins: str = Field(default="*", description="CORS 允许的源，逗号分隔")

    # 子配置
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    celery: CelerySettings = Field(default_factory=CelerySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    alerting: AlertingSettings = Field(default_factory=AlertingSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"环境必须是 {allowed} 之一")
        return v

    @property
    def cors_origin_list(self) -> List[str]:
        """解析 CORS 源列表"""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_celery_broker_url(self) -> str:
        """获取 Celery broker URL"""
        return self.celery.broker_url or self.redis.url

    def get_celery_result_backend(self) -> str:
        """获取 Celery 结果后端 URL"""
        return self.celery.result_backend or self.redis.url

    def display_config(self) -> dict:
        """返回脱敏后的配置（用于日志/调试）"""
        return {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_host": self.database.host,
            "database_name": self.database.name,
            "redis_host": self.redis.host,
            "smtp_configured": self.notifications.smtp_host is not None,
            "jobs_enabled": self.jobs.enabled,
            "lock_backend": self.jobs.lock_backend,
        }


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例（缓存）"""
    return Settings()
