#!/usr/bin/env python
"""
启动 API 服务器

使用方式:
    python scripts/run_server.py
    python scripts/run_server.py --host 0.0.0.0 --port 8000 --reload
    python scripts/run_server.py --with-jobs   # 在服务进程内运行后台任务
"""
import argparse
import os

import uvicorn

from core.config import get_settings
from logging_config import setup_logging


def main():
    parser = argparse.ArgumentParser(description="启动 Nexus 告警 API 服务器")
    parser.add_argument("--host", default=None, help="监听地址")
    parser.add_argument("--port", type=int, default=None, help="监听端口")
    parser.add_argument("--reload", action="store_true", help="开启热重载")
    parser.add_argument("--workers", type=int, default=1, help="Worker 数量")
    parser.add_argument("--with-jobs", action="store_true", help="在服务进程内启动后台任务")

    args = parser.parse_args()
    if args.with_jobs:
        # 子进程通过环境变量读取配置
        os.environ["JOBS_ENABLED"] = "true"
        get_settings.cache_clear()
    settings = get_settings()

    setup_logging()

    uvicorn.run(
        "api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload or settings.debug,
        workers=args.workers if not args.reload else 1,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
