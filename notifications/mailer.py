# notifications/mailer.py
"""
Outbound mail transports.

`send` renders the named template and delivers it synchronously from the
caller's point of view: it returns on success and raises MailDeliveryError
on failure, so callers can count and log failed recipients.
"""
import asyncio
import smtplib
from email.message import EmailMessage
from typing import Any, Protocol

import structlog

from notifications.templates import render

log = structlog.get_logger(__name__)


class MailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail server."""


class MailTransport(Protocol):
    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> None:
        ...


class SmtpMailTransport:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> None:
        if not recipient:
            raise MailDeliveryError("Recipient has no email address")
        subject, body = render(template, data)

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.set_content(body)

        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"Failed to send '{template}' to {recipient}: {exc}") from exc

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as s:
            if self.use_tls:
                s.starttls()
            if self.username and self.password:
                s.login(self.username, self.password)
            s.send_message(msg)


class LogMailTransport:
    """Writes rendered mail to the log. Used when SMTP is not configured."""

    async def send(self, recipient: str, template: str, data: dict[str, Any]) -> None:
        if not recipient:
            raise MailDeliveryError("Recipient has no email address")
        subject, body = render(template, data)
        log.info("mail_logged", recipient=recipient, template=template, subject=subject, body=body)


def build_mail_transport(settings) -> MailTransport:
    if settings.SMTP_HOST:
        return SmtpMailTransport(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.MAIL_FROM,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_TLS,
        )
    return LogMailTransport()
