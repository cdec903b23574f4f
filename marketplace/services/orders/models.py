"""Order service database models.

This DB is the source of truth for orders, inquiries, their product lines and
the chat history attached to each order.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.common.db import Base


class Order(Base):
    """One order or pre-purchase inquiry between a buyer and a seller."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid4().hex)
    buyer_id: Mapped[str] = mapped_column(String, index=True)
    seller_id: Mapped[str] = mapped_column(String, index=True)
    total_price: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now()
    )

    products: Mapped[list["OrderProduct"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderProduct.position",
        lazy="selectin",
    )
    chat_history: Mapped[list["ChatMessage"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ChatMessage.seq",
        lazy="selectin",
    )


class OrderProduct(Base):
    """Snapshot of a product as it was when the line was written."""

    __tablename__ = "order_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    product_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text, default="")
    price: Mapped[float] = mapped_column(Float)
    quantity: Mapped[int] = mapped_column(Integer)

    order: Mapped[Order] = relationship(back_populates="products")


class ChatMessage(Base):
    """Append-only chat history; one row per message, ordered by `seq`."""

    __tablename__ = "order_chat_messages"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    text: Mapped[str] = mapped_column(Text)
    sender_id: Mapped[str] = mapped_column(String)
    role: Mapped[str] = mapped_column(String)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
