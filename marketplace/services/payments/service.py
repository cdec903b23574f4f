"""Payment store: the only writer of payment rows."""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select, update

from marketplace.common.config import settings
from marketplace.common.errors import NotFound
from marketplace.services.payments.models import Payment
from marketplace.services.payments.schemas import PaymentCreateRequest, PaymentStatus


@dataclass(frozen=True)
class StatusChange:
    """Result of one status write."""

    payment: Payment
    previous_status: str
    fulfillment_claimed: bool


class PaymentService:
    """CRUD over payments plus the status write used by the orchestrator."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def create(self, req: PaymentCreateRequest) -> Payment:
        with self.session_factory() as db:
            payment = Payment(
                id=uuid4().hex,
                order_id=req.order_id,
                amount=req.amount,
                currency=(req.currency or settings.default_currency).upper(),
                status=PaymentStatus.PENDING.value,
                product_id=req.product_id,
                product_quantity=req.product_quantity,
            )
            db.add(payment)
            db.commit()
            return payment

    def list_all(self, status: PaymentStatus | None = None) -> list[Payment]:
        query = select(Payment).order_by(Payment.created_at)
        if status is not None:
            query = query.where(Payment.status == status.value)
        with self.session_factory() as db:
            return list(db.execute(query).scalars())

    def _for_order(self, db, order_id: str) -> Payment | None:
        # One payment per order is intended but not enforced; the oldest wins.
        return (
            db.execute(select(Payment).where(Payment.order_id == order_id).order_by(Payment.created_at).limit(1))
            .scalars()
            .first()
        )

    def get_by_order_id(self, order_id: str) -> Payment:
        with self.session_factory() as db:
            payment = self._for_order(db, order_id)
            if payment is None:
                raise NotFound(f"payment for order {order_id} not found")
            return payment

    def set_status(self, order_id: str, status: PaymentStatus, claim_fulfillment: bool = False) -> StatusChange:
        """Write `status` for the order's payment.

        With `claim_fulfillment` on a SUCCEEDED write, `fulfilled_at` is set by a
        guarded UPDATE in the same transaction; only one writer ever sees
        `fulfillment_claimed=True` for a given payment.
        """

        now = datetime.now(timezone.utc)
        with self.session_factory() as db:
            payment = self._for_order(db, order_id)
            if payment is None:
                raise NotFound(f"payment for order {order_id} not found")
            previous = payment.status
            db.execute(
                update(Payment)
                .where(Payment.id == payment.id)
                .values(status=status.value, updated_at=now)
            )
            claimed = False
            if claim_fulfillment and status is PaymentStatus.SUCCEEDED:
                result = db.execute(
                    update(Payment)
                    .where(Payment.id == payment.id, Payment.fulfilled_at.is_(None))
                    .values(fulfilled_at=now)
                )
                claimed = result.rowcount == 1
            db.commit()
            db.refresh(payment)
            return StatusChange(payment=payment, previous_status=previous, fulfillment_claimed=claimed)

    def delete(self, payment_id: str) -> bool:
        with self.session_factory() as db:
            payment = db.get(Payment, payment_id)
            if payment is None:
                return False
            db.delete(payment)
            db.commit()
            return True
