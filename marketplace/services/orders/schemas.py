"""API request/response schemas for order, inquiry and chat endpoints."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import ConfigDict, Field, field_validator, model_validator

from marketplace.common.schemas import WireModel


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    INQUIRY = "INQUIRY"


class ChatRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"


INQUIRY_LINES_MESSAGE = "an INQUIRY order must have exactly one product line"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderProductIn(WireModel):
    """One product line; price is a snapshot taken when the line is written."""

    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    price: float = Field(ge=0)
    quantity: int = Field(gt=0)

    @field_validator("price")
    @classmethod
    def _at_most_two_decimals(cls, value: float) -> float:
        if round(value, 2) != value:
            raise ValueError("price must have at most 2 decimal places")
        return value


class OrderProductOut(WireModel):
    product_id: str
    name: str
    description: str = ""
    price: float
    quantity: int


class ChatMessageIn(WireModel):
    """Message as published by a chat client."""

    text: str = Field(min_length=1)
    sender_id: str = Field(min_length=1)
    role: ChatRole
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("text", "sender_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class ChatMessageOut(WireModel):
    text: str
    sender_id: str
    role: ChatRole
    timestamp: datetime


class OrderCreateRequest(WireModel):
    """Order creation payload."""

    buyer_id: str = Field(min_length=1)
    seller_id: str = Field(min_length=1)
    products: list[OrderProductIn] = Field(min_length=1)
    total_price: float = Field(ge=0)
    status: OrderStatus = OrderStatus.CREATED

    @model_validator(mode="after")
    def _inquiry_has_one_line(self) -> "OrderCreateRequest":
        if self.status is OrderStatus.INQUIRY and len(self.products) != 1:
            raise ValueError(INQUIRY_LINES_MESSAGE)
        return self


class OrderPatch(WireModel):
    """Partial order update; only fields present with a value are written."""

    model_config = ConfigDict(extra="forbid")

    buyer_id: str | None = Field(default=None, min_length=1)
    seller_id: str | None = Field(default=None, min_length=1)
    products: list[OrderProductIn] | None = Field(default=None, min_length=1)
    total_price: float | None = Field(default=None, ge=0)
    status: OrderStatus | None = None

    def present_fields(self) -> set[str]:
        return {name for name in self.model_fields_set if getattr(self, name) is not None}


class OrderResponse(WireModel):
    id: str
    buyer_id: str
    seller_id: str
    products: list[OrderProductOut]
    total_price: float
    status: OrderStatus
    chat_history: list[ChatMessageOut] = []
    created_at: datetime | None = None


class ProductSnapshot(WireModel):
    """Product as resolved from the product service."""

    id: str = ""
    owner_id: str = ""
    name: str = ""
    description: str = ""
    price: float = 0.0

