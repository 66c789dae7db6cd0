#!/usr/bin/env python
"""
启动 Celery Worker

使用方式:
    python scripts/run_worker.py
    python scripts/run_worker.py --queue delivery --concurrency 4
    python scripts/run_worker.py --beat   # 同时运行 beat 调度
"""
import argparse

from workers.celery_app import celery_app
from logging_config import setup_logging


def main():
    parser = argparse.ArgumentParser(description="启动 Celery Worker")
    parser.add_argument("--concurrency", type=int, default=1, help="并发数")
    parser.add_argument("--queue", default="evaluation,delivery,maintenance", help="监听的队列，逗号分隔")
    parser.add_argument("--loglevel", default="INFO", help="日志级别")
    parser.add_argument("--beat", action="store_true", help="在 worker 内嵌运行 beat")

    args = parser.parse_args()

    setup_logging(level=args.loglevel)

    argv = [
        "worker",
        f"--concurrency={args.concurrency}",
        f"--queues={args.queue}",
        f"--loglevel={args.loglevel}",
    ]
    if args.beat:
        argv.append("--beat")
    celery_app.worker_main(argv)


if __name__ == "__main__":
    main()
