"""
渠道配置解析测试
"""
import pytest

from core.exceptions import ChannelConfigError
from core.notifications.config import (
    parse_channel_config,
    dump_channel_config,
    WebhookChannelConfig,
)


class TestParseChannelConfig:
    def test_email(self):
        config = parse_channel_config("email", {"address": " ops@example.com "})
        assert config.address == "ops@example.com"

    def test_camel_case_input(self):
        config = parse_channel_config("slack", {"webhookUrl": "https://hooks.slack.com/T/B/x"})
        assert dump_channel_config(config) == {"webhook_url": "https://hooks.slack.com/T/B/x"}

    def test_nested_input(self):
        config = parse_channel_config("webhook", {"webhook": {"url": "https://example.com/hook", "secret": "s"}})
        assert isinstance(config, WebhookChannelConfig)
        assert config.secret == "s"
        assert config.method == "POST"

    def test_webhook_method_normalized(self):
        config = parse_channel_config("webhook", {"url": "https://example.com/hook", "method": "put"})
        assert config.method == "PUT"

    def test_in_app_accepts_empty(self):
        assert dump_channel_config(parse_channel_config("in_app", None)) == {}

    @pytest.mark.parametrize("channel_type,raw,message", [
        ("email", {}, "Email address is required"),
        ("email", {"address": "not-an-email"}, "Invalid email address"),
        ("webhook", {}, "Webhook URL is required"),
        ("webhook", {"url": "ftp://example.com"}, "Invalid webhook URL"),
        ("slack", {}, "Slack webhook URL is required"),
        ("discord", {"webhook_url": "nope"}, "Invalid Discord webhook URL"),
        ("teams", {}, "Teams webhook URL is required"),
        ("sms", {}, "Unsupported channel type: sms"),
    ])
    def test_invalid(self, channel_type, raw, message):
        with pytest.raises(ChannelConfigError) as exc_info:
            parse_channel_config(channel_type, raw)
        assert str(exc_info.value) == message

    def test_non_dict_rejected(self):
        with pytest.raises(ChannelConfigError):
            parse_channel_config("webhook", ["https://example.com"])
