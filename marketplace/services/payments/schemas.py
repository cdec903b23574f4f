"""API request/response schemas for payment endpoints."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from marketplace.common.schemas import WireModel


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PaymentCreateRequest(WireModel):
    """Payment creation payload; status always starts at PENDING."""

    order_id: str = Field(min_length=1)
    amount: float = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    product_id: str = Field(min_length=1)
    product_quantity: int = Field(gt=0)


class PaymentStatusUpdate(WireModel):
    status: PaymentStatus


class PaymentResponse(WireModel):
    id: str
    order_id: str
    amount: float
    currency: str
    status: PaymentStatus
    product_id: str
    product_quantity: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
