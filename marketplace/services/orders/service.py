"""Order store and inquiry resolution.

`OrderService` is the only writer of order documents. Inquiries are resolved
with a find-then-insert: two concurrent first requests for the same
seller/product can both miss and both insert. That race is accepted; no
unique index backs the lookup.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select

from marketplace.common.config import settings
from marketplace.common.errors import NotFound, ValidationError
from marketplace.common.logging import logger
from marketplace.common.metrics import inquiries_total
from marketplace.services.orders.models import ChatMessage, Order, OrderProduct
from marketplace.services.orders.schemas import (
    INQUIRY_LINES_MESSAGE,
    ChatMessageIn,
    OrderCreateRequest,
    OrderPatch,
    OrderProductIn,
    OrderStatus,
    ProductSnapshot,
)


def _product_lines(lines: list[OrderProductIn]) -> list[OrderProduct]:
    return [
        OrderProduct(
            position=position,
            product_id=line.product_id,
            name=line.name,
            description=line.description,
            price=line.price,
            quantity=line.quantity,
        )
        for position, line in enumerate(lines)
    ]


class OrderService:
    """Owns order documents: CRUD, chat appends, and inquiry lookup."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def create(self, req: OrderCreateRequest) -> Order:
        with self.session_factory() as db:
            order = Order(
                id=uuid4().hex,
                buyer_id=req.buyer_id,
                seller_id=req.seller_id,
                products=_product_lines(req.products),
                total_price=req.total_price,
                status=req.status.value,
                chat_history=[],
            )
            db.add(order)
            db.commit()
            return order

    def list_all(self) -> list[Order]:
        with self.session_factory() as db:
            return list(db.execute(select(Order).order_by(Order.created_at)).scalars())

    def list_by_buyer(self, buyer_id: str) -> list[Order]:
        with self.session_factory() as db:
            return list(
                db.execute(select(Order).where(Order.buyer_id == buyer_id).order_by(Order.created_at)).scalars()
            )

    def list_by_seller(self, seller_id: str) -> list[Order]:
        with self.session_factory() as db:
            return list(
                db.execute(select(Order).where(Order.seller_id == seller_id).order_by(Order.created_at)).scalars()
            )

    def get(self, order_id: str) -> Order:
        with self.session_factory() as db:
            order = db.get(Order, order_id)
            if order is None:
                raise NotFound(f"order {order_id} not found")
            return order

    def update(self, order_id: str, patch: OrderPatch) -> Order:
        """Write only the fields present on `patch`; everything else is left as stored."""

        fields = patch.present_fields()
        with self.session_factory() as db:
            order = db.get(Order, order_id)
            if order is None:
                raise NotFound(f"order {order_id} not found")
            if "buyer_id" in fields:
                order.buyer_id = patch.buyer_id
            if "seller_id" in fields:
                order.seller_id = patch.seller_id
            if "total_price" in fields:
                order.total_price = patch.total_price
            if "status" in fields:
                order.status = patch.status.value
            if "products" in fields:
                order.products = _product_lines(patch.products)
            if order.status == OrderStatus.INQUIRY.value and len(order.products) != 1:
                db.rollback()
                raise ValidationError(
                    "invalid order update", errors=[{"field": "products", "message": INQUIRY_LINES_MESSAGE}]
                )
            db.commit()
            logger.info("order_updated order_id=%s fields=%s", order_id, sorted(fields))
            return order

    def delete(self, order_id: str) -> bool:
        """Remove one order; returns False when nothing was there to remove."""

        with self.session_factory() as db:
            order = db.get(Order, order_id)
            if order is None:
                return False
            db.delete(order)
            db.commit()
            return True

    def append_message(self, order_id: str, message: ChatMessageIn) -> ChatMessage:
        """Append one message to an order's chat history.

        Each append is a single-row insert, so concurrent appends to the same
        order never overwrite one another; their relative order follows commit
        order, not arrival order.
        """

        with self.session_factory() as db:
            exists = db.execute(select(Order.id).where(Order.id == order_id)).scalar_one_or_none()
            if exists is None:
                raise NotFound(f"order {order_id} not found")
            row = ChatMessage(
                order_id=order_id,
                text=message.text,
                sender_id=message.sender_id,
                role=message.role.value,
                timestamp=message.timestamp,
            )
            db.add(row)
            db.commit()
            return row

    def find_open_inquiry(self, seller_id: str, product_id: str) -> Order | None:
        """Oldest INQUIRY order of `seller_id` with a line for `product_id`."""

        with self.session_factory() as db:
            return (
                db.execute(
                    select(Order)
                    .join(Order.products)
                    .where(
                        Order.seller_id == seller_id,
                        Order.status == OrderStatus.INQUIRY.value,
                        OrderProduct.product_id == product_id,
                    )
                    .order_by(Order.created_at)
                    .limit(1)
                )
                .scalars()
                .first()
            )

    def get_or_create_inquiry(self, product: ProductSnapshot, buyer_id: str, quantity: int = 1) -> Order:
        """Return the open inquiry on this product with its seller, creating it when absent.

        The lookup keys on seller, product and INQUIRY status only; an existing
        inquiry is returned untouched, whoever opened it. A new one snapshots the
        product's current name, description and price into a single line.
        """

        if not product.id:
            raise NotFound("product id is missing")
        problems = []
        if not buyer_id:
            problems.append({"field": "buyerId", "message": "must not be empty"})
        if quantity < 1:
            problems.append({"field": "quantity", "message": "must be at least 1"})
        if problems:
            raise ValidationError("invalid inquiry request", errors=problems)

        existing = self.find_open_inquiry(product.owner_id, product.id)
        if existing is not None:
            logger.info("inquiry_reused order_id=%s product_id=%s", existing.id, product.id)
            inquiries_total.labels(service=settings.service_name, outcome="reused").inc()
            return existing

        with self.session_factory() as db:
            inquiry = Order(
                id=uuid4().hex,
                buyer_id=buyer_id,
                seller_id=product.owner_id,
                products=[
                    OrderProduct(
                        position=0,
                        product_id=product.id,
                        name=product.name,
                        description=product.description,
                        price=product.price,
                        quantity=quantity,
                    )
                ],
                total_price=product.price,
                status=OrderStatus.INQUIRY.value,
                chat_history=[],
                created_at=datetime.now(timezone.utc),
            )
            db.add(inquiry)
            db.commit()
        logger.info("inquiry_created order_id=%s product_id=%s seller_id=%s", inquiry.id, product.id, product.owner_id)
        inquiries_total.labels(service=settings.service_name, outcome="created").inc()
        return inquiry
