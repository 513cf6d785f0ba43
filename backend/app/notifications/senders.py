from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Protocol

from ..config import Settings
from .messages import EmailMessage

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SmtpEmailSender(EmailSender):
    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.from_email = settings.smtp_from_email

    def _send_sync(self, message: EmailMessage) -> None:
        mime = MIMEText(message.body, "plain", "utf-8")
        mime["Subject"] = message.subject
        mime["From"] = formataddr((message.from_name, self.from_email))
        mime["To"] = message.to
        if message.reply_to:
            mime["Reply-To"] = message.reply_to
        for name, value in message.headers.items():
            mime[name] = value
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, [message.to], mime.as_string())

    async def send(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, message)
        logger.info("email sent to %s: %s", message.to, message.subject)


class LogEmailSender(EmailSender):
    """Used when SMTP is not configured; records what would have been sent."""

    async def send(self, message: EmailMessage) -> None:
        logger.info("email (not sent, SMTP disabled) to %s: %s", message.to, message.subject)


def build_sender(settings: Settings) -> EmailSender:
    if settings.smtp_enabled:
        return SmtpEmailSender(settings)
    return LogEmailSender()
