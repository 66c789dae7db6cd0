"""
任务互斥锁

同一任务同一时刻只允许一个执行:
- LocalJobLock: 进程内标志位，适用于单实例
- RedisJobLock: SET NX PX + token 校验释放，适用于多实例部署
"""
import uuid
from typing import Optional, Protocol

from redis import Redis
import structlog

logger = structlog.get_logger(__name__)

# 释放时校验 token，避免删除其他实例持有的锁
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class JobLock(Protocol):
    """任务锁协议"""

    @property
    def locked(self) -> bool: ...

    def acquire(self) -> bool: ...

    def release(self) -> None: ...


class LocalJobLock:
    """进程内任务锁"""

    def __init__(self, name: str = "job"):
        self.name = name
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    def acquire(self) -> bool:
        if self._locked:
            return False
        self._locked = True
        return True

    def release(self) -> None:
        self._locked = False


class RedisJobLock:
    """
    基于 Redis 的分布式任务锁

    ttl_seconds 到期后锁自动失效，防止持有者崩溃导致死锁
    """

    KEY_PREFIX = "nexus:job_lock:"

    def __init__(self, redis_client: Redis, name: str, ttl_seconds: int = 900):
        self.redis = redis_client
        self.name = name
        self.key = f"{self.KEY_PREFIX}{name}"
        self.ttl_ms = ttl_seconds * 1000
        self._token: Optional[str] = None

    @property
    def locked(self) -> bool:
        return bool(self.redis.exists(self.key))

    def acquire(self) -> bool:
        token = uuid.uuid4().hex
        if self.redis.set(self.key, token, nx=True, px=self.ttl_ms):
            self._token = token
            return True
        return False

    def release(self) -> None:
        if self._token is None:
            return
        released = self.redis.eval(RELEASE_SCRIPT, 1, self.key, self._token)
        if not released:
            logger.warning("job_lock_lost", job=self.name)
        self._token = None


def create_job_lock(name: str, backend: str = "local", redis_url: Optional[str] = None) -> JobLock:
    """按配置创建任务锁"""
    if backend == "redis":
        client = Redis.from_url(redis_url, decode_responses=True)
        return RedisJobLock(client, name)
    return LocalJobLock(name)
