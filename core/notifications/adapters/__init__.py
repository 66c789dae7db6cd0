# 渠道适配器
from .base import ChannelAdapter, DeliveryResult, severity_color, is_retryable_status
from .email import EmailAdapter
from .webhook import WebhookAdapter, sign_payload, encode_payload, SIGNATURE_HEADER
from .chat import SlackAdapter, DiscordAdapter, TeamsAdapter
from .in_app import InAppAdapter

ADAPTERS = {
    adapter.channel_type: adapter
    for adapter in (EmailAdapter, WebhookAdapter, SlackAdapter, DiscordAdapter, TeamsAdapter, InAppAdapter)
}

__all__ = [
    "ChannelAdapter",
    "DeliveryResult",
    "severity_color",
    "is_retryable_status",
    "EmailAdapter",
    "WebhookAdapter",
    "sign_payload",
    "encode_payload",
    "SIGNATURE_HEADER",
    "SlackAdapter",
    "DiscordAdapter",
    "TeamsAdapter",
    "InAppAdapter",
    "ADAPTERS",
]
