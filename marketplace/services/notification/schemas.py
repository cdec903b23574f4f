"""API request/response schemas for email dispatch."""

from pydantic import BaseModel, EmailStr, Field


class SendEmailRequest(BaseModel):
    """Payload accepted by `POST /notify/email`."""

    to: EmailStr
    subject: str = Field(min_length=1)
    text: str = Field(min_length=1)
    html: str | None = None


class SendEmailResponse(BaseModel):
    message: str
    messageId: str
