"""
邮件适配器

smtplib 是阻塞调用，放到默认线程池中执行
"""
import asyncio
import re
import smtplib
import uuid
from email.message import EmailMessage
from typing import Dict, Any

import structlog

from db.models import Alert, ChannelType
from ..config import EmailChannelConfig
from ..templates import Template, render_template
from .base import ChannelAdapter, DeliveryResult

logger = structlog.get_logger(__name__)

DEFAULT_SUBJECT = "Alert: {{alertTitle}}"

LINE_BREAKS = re.compile(r"[\r\n]+")


class EmailAdapter(ChannelAdapter):
    channel_type = ChannelType.EMAIL.value
    label = "Email"

    def _build_message(self, to_address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.email_from
        message["To"] = to_address
        message["Subject"] = subject
        message["Message-ID"] = f"<{uuid.uuid4().hex}@{self.settings.email_from.split('@')[-1]}>"
        message.set_content(body)
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.http_timeout) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_username and s.smtp_password:
                server.login(s.smtp_username, s.smtp_password)
            server.send_message(message)

    async def send(
        self,
        alert: Alert,
        config: EmailChannelConfig,
        variables: Dict[str, Any],
        template: Template,
    ) -> DeliveryResult:
        if not self.settings.smtp_host:
            return DeliveryResult.fail("SMTP is not configured", should_retry=False)

        # 邮件头不允许换行
        subject = LINE_BREAKS.sub(" ", render_template(template.subject or DEFAULT_SUBJECT, variables)).strip()
        body = render_template(template.body, variables)
        try:
            message = self._build_message(config.address, subject, body)
        except ValueError as e:
            logger.warning("email_message_invalid", alert_id=alert.id, error=str(e))
            return DeliveryResult.fail(f"Invalid email message: {e}", should_retry=False)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, message)
        except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused) as e:
            logger.warning("email_rejected", alert_id=alert.id, error=str(e))
            return DeliveryResult.fail(f"Email rejected: {e}", should_retry=False)
        except smtplib.SMTPResponseException as e:
            # 4xx 为临时错误，5xx 为永久错误
            logger.warning("email_smtp_error", alert_id=alert.id, code=e.smtp_code)
            return DeliveryResult.fail(f"SMTP error {e.smtp_code}: {e.smtp_error!r}", should_retry=e.smtp_code < 500)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("email_transport_error", alert_id=alert.id, error=str(e))
            return DeliveryResult.fail(f"Email transport error: {e}", should_retry=True)

        logger.info("email_sent", alert_id=alert.id, to=config.address)
        return DeliveryResult.ok({"message_id": message["Message-ID"], "to": config.address})
