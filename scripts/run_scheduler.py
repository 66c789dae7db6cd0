#!/usr/bin/env python
"""
独立运行后台任务调度（不启动 API）

使用方式:
    python scripts/run_scheduler.py
    python scripts/run_scheduler.py --once alert_evaluation
"""
import argparse
import asyncio
import json
import signal

from core.config import get_settings
from core.scheduler import JobManager
from db.database import get_engine
from logging_config import setup_logging, get_logger

logger = get_logger(__name__)


async def run_forever(manager: JobManager) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    manager.start_all()
    await stop.wait()
    await manager.stop_all()


def main():
    parser = argparse.ArgumentParser(description="运行告警后台任务")
    parser.add_argument("--once", default=None, help="只执行一次指定任务后退出")
    args = parser.parse_args()

    setup_logging()
    settings = get_settings()
    engine = get_engine()
    manager = JobManager(settings=settings)

    logger.info("scheduler_process_starting", lock_backend=settings.jobs.lock_backend)
    try:
        if args.once:
            result = asyncio.run(manager.run_job_once(args.once))
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        else:
            asyncio.run(run_forever(manager))
    finally:
        engine.dispose()
        logger.info("scheduler_process_stopped")


if __name__ == "__main__":
    main()
