"""
通知模板

模板使用 {{key}} 占位符；未提供的占位符原样保留。
"""
import json
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable

from sqlalchemy.orm import Session
import structlog

from db.crud import TemplateCRUD
from db.models import Alert, ChannelType

logger = structlog.get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass
class Template:
    body: str
    subject: Optional[str] = None


DEFAULT_TEMPLATES: Dict[str, Template] = {
    ChannelType.EMAIL.value: Template(
        subject="[{{severity}}] {{alertTitle}}",
        body=(
            "Alert: {{alertTitle}}\n"
            "\n"
            "{{alertMessage}}\n"
            "\n"
            "Details:\n"
            "- Type: {{alertType}}\n"
            "- Severity: {{severity}}\n"
            "- Time: {{formattedTime}}\n"
            "\n"
            "View in dashboard: {{alertUrl}}"
        ),
    ),
    ChannelType.WEBHOOK.value: Template(
        body=json.dumps({
            "alert_id": "{{alertId}}",
            "title": "{{alertTitle}}",
            "message": "{{alertMessage}}",
            "type": "{{alertType}}",
            "severity": "{{severity}}",
            "timestamp": "{{timestamp}}",
            "dashboard_url": "{{dashboardUrl}}",
        }, indent=2),
    ),
    ChannelType.SLACK.value: Template(
        body=":warning: *{{alertTitle}}*\n\n{{alertMessage}}\n\n<{{alertUrl}}|View in Dashboard>",
    ),
    ChannelType.DISCORD.value: Template(body="{{alertMessage}}"),
    ChannelType.TEAMS.value: Template(body="{{alertMessage}}"),
}

FALLBACK_TEMPLATE = Template(body="{{alertMessage}}")


def _stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if value is None:
        return ""
    return str(value)


def json_string_escape(value: str) -> str:
    """转义为 JSON 字符串内容（不含两侧引号）"""
    return json.dumps(value)[1:-1]


def render_template(
    template: str,
    variables: Dict[str, Any],
    escape: Optional[Callable[[str], str]] = None,
) -> str:
    """
    渲染模板

    Args:
        template: 含 {{key}} 占位符的文本
        variables: 变量；dict / list 渲染为 JSON
        escape: 对标量替换值再做一次转义（webhook 使用 JSON 字符串转义），
            dict / list 始终原样输出 JSON

    >>> render_template("{{a}} and {{b}}", {"a": "x", "b": "y"})
    'x and y'
    """
    def replace(match: "re.Match") -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        text = _stringify(value)
        if escape is None or isinstance(value, (dict, list)):
            return text
        return escape(text)

    return PLACEHOLDER.sub(replace, template)


def build_variables(alert: Alert, dashboard_url: str) -> Dict[str, Any]:
    """构建告警的模板变量"""
    dashboard_url = dashboard_url.rstrip("/")
    created_at = alert.created_at
    return {
        "alertId": alert.id,
        "alertTitle": alert.title,
        "alertMessage": alert.message,
        "alertType": alert.type,
        "severity": alert.severity,
        "timestamp": created_at.isoformat() + "Z" if created_at else "",
        "formattedTime": created_at.strftime("%Y-%m-%d %H:%M:%S UTC") if created_at else "",
        "dashboardUrl": dashboard_url,
        "alertUrl": f"{dashboard_url}/dashboard/alerts/{alert.id}",
        "providerId": alert.provider_id or "",
        "metadata": alert.metadata_ or {},
    }


class TemplateStore:
    """
    模板查找

    优先使用 notification_templates 表中的模板，否则回退到内置默认模板
    """

    def __init__(self, db: Optional[Session] = None):
        self.db = db

    def get_template(self, channel_type: str, alert_type: str, severity: str) -> Template:
        if self.db is not None:
            row = TemplateCRUD.find(self.db, channel_type, alert_type, severity)
            if row is not None:
                logger.debug("template_override_used", template_id=row.id, channel_type=channel_type)
                return Template(body=row.body, subject=row.subject)
        return DEFAULT_TEMPLATES.get(channel_type, FALLBACK_TEMPLATE)
