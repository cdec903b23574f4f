"""Notification persistence models (email delivery log)."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.common.db import Base


class NotificationLog(Base):
    """Stored record of each email handed to the SMTP transport."""

    __tablename__ = "notification_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid4().hex)
    recipient: Mapped[str] = mapped_column(String, index=True)
    subject: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String)
    message_id: Mapped[str | None] = mapped_column(String, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now()
    )
