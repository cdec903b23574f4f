"""Product reads and guarded stock decrements."""

from uuid import uuid4

from sqlalchemy import update

from marketplace.common.config import settings
from marketplace.common.errors import Conflict, NotFound
from marketplace.common.logging import logger
from marketplace.common.metrics import stock_decrements_rejected_total
from marketplace.services.products.models import Product
from marketplace.services.products.schemas import ProductCreateRequest


class ProductService:
    """Owns product rows; the stock count only moves through `decrease_stock`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def create(self, req: ProductCreateRequest, owner_id: str) -> Product:
        with self.session_factory() as db:
            product = Product(
                id=uuid4().hex,
                owner_id=owner_id,
                name=req.name,
                description=req.description,
                price=req.price,
                stock_count=req.stock_count,
            )
            db.add(product)
            db.commit()
            return product

    def get(self, product_id: str) -> Product:
        with self.session_factory() as db:
            product = db.get(Product, product_id)
            if product is None:
                raise NotFound(f"product {product_id} not found")
            return product

    def decrease_stock(self, product_id: str, quantity: int) -> Product:
        """Take `quantity` units off the stock count, or nothing at all.

        The check and the decrement are one guarded UPDATE, so concurrent
        decrements can never drive the count below zero.
        """

        with self.session_factory() as db:
            result = db.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock_count >= quantity)
                .values(stock_count=Product.stock_count - quantity)
            )
            if result.rowcount != 1:
                db.rollback()
                if db.get(Product, product_id) is None:
                    raise NotFound(f"product {product_id} not found")
                stock_decrements_rejected_total.labels(service=settings.service_name).inc()
                logger.warning("stock_decrement_rejected product_id=%s quantity=%s", product_id, quantity)
                raise Conflict("Insufficient stock")
            db.commit()
            product = db.get(Product, product_id)
            logger.info("stock_decreased product_id=%s quantity=%s remaining=%s", product_id, quantity, product.stock_count)
            return product
