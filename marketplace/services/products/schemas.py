"""API request/response schemas for product stock endpoints."""

from datetime import datetime

from pydantic import Field, field_validator

from marketplace.common.schemas import WireModel


class ProductCreateRequest(WireModel):
    name: str = Field(min_length=3, max_length=50)
    description: str = ""
    price: float = Field(gt=0)
    stock_count: int = Field(ge=0, le=100)

    @field_validator("price")
    @classmethod
    def _at_most_two_decimals(cls, value: float) -> float:
        if round(value, 2) != value:
            raise ValueError("price must have at most 2 decimal places")
        return value


class ProductResponse(WireModel):
    id: str
    owner_id: str
    name: str
    description: str
    price: float
    stock_count: int
    created_at: datetime | None = None


class DecreaseStockRequest(WireModel):
    quantity: int = Field(default=1, ge=1)
