"""
通用 Webhook 适配器

请求体为渲染后的 JSON 模板（紧凑格式）。配置了 secret 时，
在 X-Nexus-Signature 头中附带对实际发送字节的 HMAC-SHA256 签名。
"""
import hashlib
import hmac
import json
from typing import Dict, Any

import structlog

from db.models import Alert, ChannelType
from ..config import WebhookChannelConfig
from ..templates import Template, render_template, json_string_escape
from .base import ChannelAdapter, DeliveryResult

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Nexus-Signature"


def sign_payload(body: bytes, secret: str) -> str:
    """
    签名请求体

    >>> sign_payload(b'{"a":1}', "s3cr3t").startswith("sha256=")
    True
    """
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={signature}"


def encode_payload(payload: Any) -> bytes:
    """紧凑 JSON 编码"""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class WebhookAdapter(ChannelAdapter):
    channel_type = ChannelType.WEBHOOK.value
    label = "Webhook"

    async def send(
        self,
        alert: Alert,
        config: WebhookChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        rendered = render_template(template.body, variables, escape=json_string_escape)
        try:
            payload = json.loads(rendered)
        except json.JSONDecodeError as e:
            logger.warning("webhook_template_invalid", alert_id=alert.id, error=str(e))
            return DeliveryResult.fail(f"Webhook template is not valid JSON: {e}", should_retry=False)

        body = encode_payload(payload)
        headers = dict(config.headers)
        if config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, config.secret)

        return await self._request(config.url, body, headers=headers, method=config.method)
