"""
通知渠道配置

每种渠道类型一个 pydantic 模型。输入接受 snake_case 或 camelCase，
也接受按类型嵌套的写法，如 {"webhook": {"url": ...}}；存储时统一为扁平的 snake_case。
"""
import re
from typing import Optional, Dict, Any, Type, Union, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from core.exceptions import ChannelConfigError
from db.models import ChannelType

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _validate_http_url(value: str, label: str) -> str:
    parsed = urlparse(value or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid {label}")
    return value


class _ChannelConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class EmailChannelConfig(_ChannelConfig):
    address: str

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v


class WebhookChannelConfig(_ChannelConfig):
    url: str
    secret: Optional[str] = None
    headers: Dict[str, str] = {}
    method: Literal["POST", "PUT"] = "POST"

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v, "webhook URL")

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v


class SlackChannelConfig(_ChannelConfig):
    webhook_url: str
    channel: Optional[str] = None
    username: Optional[str] = None

    @field_validator("webhook_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v, "Slack webhook URL")


class DiscordChannelConfig(_ChannelConfig):
    webhook_url: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("webhook_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v, "Discord webhook URL")


class TeamsChannelConfig(_ChannelConfig):
    webhook_url: str

    @field_validator("webhook_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v, "Teams webhook URL")


class InAppChannelConfig(_ChannelConfig):
    pass


ChannelConfig = Union[
    EmailChannelConfig,
    WebhookChannelConfig,
    SlackChannelConfig,
    DiscordChannelConfig,
    TeamsChannelConfig,
    InAppChannelConfig,
]

CONFIG_MODELS: Dict[str, Type[_ChannelConfig]] = {
    ChannelType.EMAIL.value: EmailChannelConfig,
    ChannelType.WEBHOOK.value: WebhookChannelConfig,
    ChannelType.SLACK.value: SlackChannelConfig,
    ChannelType.DISCORD.value: DiscordChannelConfig,
    ChannelType.TEAMS.value: TeamsChannelConfig,
    ChannelType.IN_APP.value: InAppChannelConfig,
}

REQUIRED_MESSAGES = {
    ("email", "address"): "Email address is required",
    ("webhook", "url"): "Webhook URL is required",
    ("slack", "webhook_url"): "Slack webhook URL is required",
    ("discord", "webhook_url"): "Discord webhook URL is required",
    ("teams", "webhook_url"): "Teams webhook URL is required",
}


def parse_channel_config(channel_type: str, raw: Optional[Dict[str, Any]]) -> ChannelConfig:
    """
    解析并校验渠道配置

    Raises:
        ChannelConfigError: 类型未知或配置不合法
    """
    model = CONFIG_MODELS.get(channel_type)
    if model is None:
        raise ChannelConfigError(f"Unsupported channel type: {channel_type}")

    raw = raw or {}
    if not isinstance(raw, dict):
        raise ChannelConfigError("Channel config must be an object")
    # 兼容嵌套写法 {"<type>": {...}}
    nested = raw.get(channel_type)
    if isinstance(nested, dict):
        raw = nested

    try:
        return model.model_validate(raw)
    except ValidationError as e:
        err = e.errors()[0]
        field = err["loc"][0] if err["loc"] else ""
        # 字段名可能是 camelCase 别名
        field = re.sub(r"(?<!^)(?=[A-Z])", "_", str(field)).lower()
        if err["type"] == "missing":
            message = REQUIRED_MESSAGES.get((channel_type, field), f"{field} is required")
        else:
            message = err["msg"].removeprefix("Value error, ")
        raise ChannelConfigError(message) from e


def dump_channel_config(config: ChannelConfig) -> Dict[str, Any]:
    """序列化为存储格式（snake_case，去掉空值）"""
    return config.model_dump(exclude_none=True)
