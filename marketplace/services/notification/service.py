"""Email dispatch with a persisted delivery log."""

from html import escape

import aiosmtplib

from marketplace.common.config import settings
from marketplace.common.errors import Upstream
from marketplace.common.logging import logger
from marketplace.common.metrics import emails_total
from marketplace.services.notification.models import NotificationLog
from marketplace.services.notification.schemas import SendEmailRequest


class NotificationService:
    """Sends emails through a transport and records every attempt."""

    def __init__(self, session_factory, transport) -> None:
        self.session_factory = session_factory
        self.transport = transport

    def _record(self, req: SendEmailRequest, status: str, message_id: str | None, error: str | None) -> None:
        with self.session_factory() as db:
            db.add(
                NotificationLog(
                    recipient=str(req.to),
                    subject=req.subject,
                    status=status,
                    message_id=message_id,
                    error=error,
                )
            )
            db.commit()

    async def send_email(self, req: SendEmailRequest) -> str:
        """Send one email; html falls back to the bold-wrapped plain text."""

        html = req.html or f"<b>{escape(req.text)}</b>"
        message = self.transport.build(str(req.to), req.subject, req.text, html)
        try:
            message_id = await self.transport.send(message)
        except (aiosmtplib.SMTPException, OSError) as exc:
            self._record(req, "FAILED", None, str(exc))
            emails_total.labels(service=settings.service_name, result="failed").inc()
            logger.error("email_failed to=%s subject=%s error=%s", req.to, req.subject, exc)
            raise Upstream(f"email transport failed: {exc}") from exc
        self._record(req, "SENT", message_id, None)
        emails_total.labels(service=settings.service_name, result="sent").inc()
        logger.info("email_sent to=%s subject=%s message_id=%s", req.to, req.subject, message_id)
        return message_id
