"""
聊天平台适配器: Slack / Discord / Microsoft Teams

各平台使用各自的 incoming webhook 消息格式
"""
from datetime import datetime
from typing import Dict, Any

from db.models import Alert, ChannelType
from ..config import SlackChannelConfig, DiscordChannelConfig, TeamsChannelConfig
from ..templates import Template, render_template
from .webhook import encode_payload
from .base import ChannelAdapter, DeliveryResult, severity_color

DEFAULT_USERNAME = "Nexus Dashboard"


class SlackAdapter(ChannelAdapter):
    """Slack attachment 消息"""
    channel_type = ChannelType.SLACK.value
    label = "Slack webhook"

    async def send(
        self,
        alert: Alert,
        config: SlackChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        payload = {
            "username": config.username or DEFAULT_USERNAME,
            "text": render_template(template.body, variables),
            "attachments": [{
                "color": severity_color(alert.severity),
                "fields": [
                    {"title": "Alert Type", "value": alert.type, "short": True},
                    {"title": "Severity", "value": alert.severity.upper(), "short": True},
                    {"title": "Time", "value": variables.get("formattedTime", ""), "short": True},
                ],
                "actions": [{
                    "type": "button",
                    "text": "View in Dashboard",
                    "url": variables.get("alertUrl", ""),
                }],
            }],
        }
        if config.channel:
            payload["channel"] = config.channel

        return await self._request(config.webhook_url, encode_payload(payload))


class DiscordAdapter(ChannelAdapter):
    """Discord embed 消息"""
    channel_type = ChannelType.DISCORD.value
    label = "Discord webhook"

    async def send(
        self,
        alert: Alert,
        config: DiscordChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        payload = {
            "username": config.username or DEFAULT_USERNAME,
            "embeds": [{
                "title": alert.title,
                "description": render_template(template.body, variables),
                "color": int(severity_color(alert.severity).lstrip("#"), 16),
                "fields": [
                    {"name": "Type", "value": alert.type, "inline": True},
                    {"name": "Severity", "value": alert.severity.upper(), "inline": True},
                    {"name": "Time", "value": variables.get("formattedTime", ""), "inline": True},
                ],
                "timestamp": datetime.utcnow().isoformat() + "Z",
            }],
        }
        if config.avatar_url:
            payload["avatar_url"] = config.avatar_url

        return await self._request(config.webhook_url, encode_payload(payload))


class TeamsAdapter(ChannelAdapter):
    """Teams MessageCard 消息"""
    channel_type = ChannelType.TEAMS.value
    label = "Teams webhook"

    async def send(
        self,
        alert: Alert,
        config: TeamsChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        payload = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": severity_color(alert.severity),
            "summary": alert.title,
            "sections": [{
                "activityTitle": alert.title,
                "activitySubtitle": render_template(template.body, variables),
                "facts": [
                    {"name": "Type", "value": alert.type},
                    {"name": "Severity", "value": alert.severity.upper()},
                    {"name": "Time", "value": variables.get("formattedTime", "")},
                ],
            }],
            "potentialAction": [{
                "@type": "OpenUri",
                "name": "View in Dashboard",
                "targets": [{"os": "default", "uri": variables.get("alertUrl", "")}],
            }],
        }

        return await self._request(config.webhook_url, encode_payload(payload))
