# 通知模块
from .adapters import ADAPTERS, ChannelAdapter, DeliveryResult
from .channels import ChannelService
from .config import parse_channel_config, dump_channel_config
from .dispatcher import DeliveryDispatcher
from .lifecycle import DeliveryLifecycle, backoff
from .router import NotificationRouter
from .templates import Template, TemplateStore, render_template, build_variables

__all__ = [
    "ADAPTERS",
    "ChannelAdapter",
    "DeliveryResult",
    "ChannelService",
    "parse_channel_config",
    "dump_channel_config",
    "DeliveryDispatcher",
    "DeliveryLifecycle",
    "backoff",
    "NotificationRouter",
    "Template",
    "TemplateStore",
    "render_template",
    "build_variables",
]
