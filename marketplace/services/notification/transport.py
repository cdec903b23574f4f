"""SMTP delivery for outbound email."""

from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib

from marketplace.common.config import settings


class SmtpTransport:
    """Sends one message per call over async SMTP."""

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str | None = None,
        password: str | None = None,
        sender: str = settings.mail_from,
        timeout: float = settings.collaborator_timeout_seconds,
    ) -> None:
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def build(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain="gggmarketplace.com")
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, message: EmailMessage) -> str:
        """Deliver `message` and return its Message-ID."""

        await aiosmtplib.send(
            message,
            hostname=self.hostname,
            port=self.port,
            username=self.username,
            password=self.password,
            timeout=self.timeout,
        )
        return message["Message-ID"]


def transport_from_settings() -> SmtpTransport:
    return SmtpTransport(
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
    )
