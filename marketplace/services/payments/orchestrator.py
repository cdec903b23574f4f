"""Payment fulfillment saga.

A SUCCEEDED status write is authoritative and committed first. Stock
adjustment and the buyer's confirmation email run afterwards as a best-effort
task: each step's failure is logged and counted, never retried, and never
rolls back or fails the status write.
"""

from dataclasses import dataclass, field
from time import perf_counter

from marketplace.common.config import settings
from marketplace.common.identity import Caller
from marketplace.common.logging import log_context, logger, trace_id_ctx
from marketplace.common.metrics import (
    payment_status_transitions_total,
    saga_step_duration_seconds,
    saga_steps_total,
)
from marketplace.services.payments.clients import NotificationClient, OrderClient, StockClient
from marketplace.services.payments.models import Payment
from marketplace.services.payments.schemas import PaymentStatus
from marketplace.services.payments.service import PaymentService


@dataclass(frozen=True)
class FulfillmentJob:
    """Everything the saga needs, captured when the status write commits."""

    payment_id: str
    order_id: str
    amount: float
    currency: str
    product_quantity: int
    caller: Caller
    trace_id: str = ""

    @classmethod
    def for_payment(cls, payment: Payment, caller: Caller) -> "FulfillmentJob":
        return cls(
            payment_id=payment.id,
            order_id=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
            product_quantity=payment.product_quantity,
            caller=caller,
            trace_id=trace_id_ctx.get(),
        )


@dataclass
class Transition:
    payment: Payment
    previous_status: str
    job: FulfillmentJob | None = None


@dataclass
class FulfillmentReport:
    """Per-step outcome: `ok`, `failed` or `skipped`."""

    steps: dict[str, str] = field(default_factory=dict)


def confirmation_email(job: FulfillmentJob) -> tuple[str, str]:
    """Subject and body of the payment confirmation sent to the buyer."""

    subject = f"Payment Successful - Order #{job.order_id[-6:]}"
    text = (
        f"Hello! Your payment of {job.amount:.2f} {job.currency} for Order #{job.order_id} "
        "was successful. We are processing your items now."
    )
    return subject, text


class PaymentOrchestrator:
    """Writes payment status and drives the post-payment saga."""

    def __init__(
        self,
        payments: PaymentService,
        orders: OrderClient,
        stock: StockClient,
        notifier: NotificationClient,
    ) -> None:
        self.payments = payments
        self.orders = orders
        self.stock = stock
        self.notifier = notifier

    def transition_status(self, order_id: str, status: PaymentStatus, caller: Caller) -> Transition:
        """Commit the new status; returns a fulfillment job only when this call owns the saga."""

        can_fulfill = bool(caller.authorization)
        change = self.payments.set_status(order_id, status, claim_fulfillment=can_fulfill)
        payment_status_transitions_total.labels(service=settings.service_name, status=status.value).inc()
        logger.info(
            "payment_status_changed payment_id=%s order_id=%s from=%s to=%s",
            change.payment.id,
            order_id,
            change.previous_status,
            status.value,
        )
        transition = Transition(payment=change.payment, previous_status=change.previous_status)
        if status is not PaymentStatus.SUCCEEDED:
            return transition
        if not can_fulfill:
            logger.warning("saga_skipped reason=no_credential payment_id=%s order_id=%s", change.payment.id, order_id)
        elif not change.fulfillment_claimed:
            logger.info("saga_skipped reason=already_fulfilled payment_id=%s order_id=%s", change.payment.id, order_id)
        else:
            transition.job = FulfillmentJob.for_payment(change.payment, caller)
        return transition

    async def fulfill(self, job: FulfillmentJob) -> FulfillmentReport:
        """Run stock adjustment then notification, in that order."""

        report = FulfillmentReport()
        with log_context(trace_id=job.trace_id, order_id=job.order_id, payment_id=job.payment_id):
            if not job.caller.authorization:
                logger.warning("saga_skipped reason=no_credential")
                report.steps = {"stock": "skipped", "notification": "skipped"}
                return report
            report.steps["stock"] = await self._run_step("stock", self._adjust_stock, job)
            report.steps["notification"] = await self._run_step("notification", self._notify, job)
            logger.info("saga_finished steps=%s", report.steps)
            return report

    async def _run_step(self, step: str, action, job: FulfillmentJob) -> str:
        started = perf_counter()
        try:
            result = await action(job)
        except Exception as exc:
            result = "failed"
            logger.error("saga_step_failed step=%s error_type=%s error=%s", step, type(exc).__name__, exc)
        saga_step_duration_seconds.labels(service=settings.service_name, step=step).observe(perf_counter() - started)
        saga_steps_total.labels(service=settings.service_name, step=step, result=result).inc()
        return result

    async def _adjust_stock(self, job: FulfillmentJob) -> str:
        """Decrement stock by the payment's quantity for every line of the order.

        A failed order fetch fails the step; a failed line is logged and the
        remaining lines are still attempted.
        """

        order = await self.orders.get_order(job.order_id, job.caller)
        failed = 0
        for line in order.get("products") or []:
            product_id = line.get("productId")
            try:
                await self.stock.decrease_stock(product_id, job.product_quantity, job.caller)
            except Exception as exc:
                failed += 1
                logger.error(
                    "stock_line_failed product_id=%s quantity=%s error=%s", product_id, job.product_quantity, exc
                )
        return "failed" if failed else "ok"

    async def _notify(self, job: FulfillmentJob) -> str:
        if not job.caller.email:
            logger.warning("notification_skipped reason=no_email")
            return "skipped"
        subject, text = confirmation_email(job)
        await self.notifier.send_email(job.caller.email, subject, text)
        return "ok"
