"""
日志配置测试
"""
import json
import logging

import structlog

from logging_config import setup_logging, get_logger, resolve_format


class TestResolveFormat:
    def test_auto(self):
        assert resolve_format("auto", "production") == "json"
        assert resolve_format("auto", "development") == "console"

    def test_explicit(self):
        assert resolve_format("console", "production") == "console"


class TestSetupLogging:
    def test_json_output_with_context(self, capsys):
        setup_logging(level="INFO", log_format="json")
        structlog.contextvars.bind_contextvars(request_id="req_test")
        try:
            get_logger("tests.logging").info("alert_created", alert_id="alert_1", user_id="用户")
        finally:
            structlog.contextvars.clear_contextvars()
            setup_logging(level="WARNING", log_format="console")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "alert_created"
        assert record["alert_id"] == "alert_1"
        assert record["user_id"] == "用户"
        assert record["request_id"] == "req_test"
        assert record["level"] == "info"

    def test_noisy_loggers_quieted(self):
        setup_logging(level="DEBUG", log_format="console")
        try:
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            setup_logging(level="WARNING", log_format="console")
