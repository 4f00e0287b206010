"""Delivery sinks for notification emails."""
from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from config.settings import settings

logger = logging.getLogger(__name__)


class DeliverySink(ABC):
    """Sends one plain-text email. Returns True on success.

    Implementations may also raise; the queue records either outcome as a
    failed delivery.
    """

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> bool:
        ...


class SmtpMailer(DeliverySink):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        use_tls: bool = True,
        timeout: float = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body, charset="utf-8")
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send(self, to: str, subject: str, body: str) -> bool:
        msg = self._build_message(to, subject, body)
        await asyncio.to_thread(self._send_sync, msg)
        logger.info("Email sent to %s: %s", to, subject)
        return True


class LogMailer(DeliverySink):
    """Development sink — logs instead of sending. Keeps an outbox for inspection."""

    def __init__(self) -> None:
        self.outbox: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> bool:
        self.outbox.append((to, subject, body))
        logger.info("[dev mail] to=%s subject=%s", to, subject)
        return True


def build_delivery_sink() -> DeliverySink:
    """SMTP when configured, otherwise the logging sink."""
    if not settings.SMTP_HOST:
        return LogMailer()
    return SmtpMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        from_email=settings.SMTP_FROM,
        use_tls=settings.SMTP_USE_TLS,
        timeout=settings.MAIL_SEND_TIMEOUT_SECONDS,
    )
