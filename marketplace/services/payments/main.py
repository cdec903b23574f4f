"""HTTP surface for payment records and the post-payment fulfillment saga."""

from fastapi import BackgroundTasks, Depends, FastAPI, Response

from marketplace.common.config import settings
from marketplace.common.db import SessionLocal
from marketplace.common.errors import NotFound, install_error_handlers
from marketplace.common.identity import Caller, caller_identity
from marketplace.common.logging import configure_logging, logger
from marketplace.common.metrics import install_http_metrics, metrics_response
from marketplace.common.startup import log_startup_config
from marketplace.common.tracing import instrument_app, setup_tracing
from marketplace.services.payments.clients import NotificationClient, OrderClient, StockClient
from marketplace.services.payments.orchestrator import PaymentOrchestrator
from marketplace.services.payments.schemas import (
    PaymentCreateRequest,
    PaymentResponse,
    PaymentStatus,
    PaymentStatusUpdate,
)
from marketplace.services.payments.service import PaymentService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "ORDER_SERVICE_URL",
        "PRODUCT_SERVICE_URL",
        "NOTIFICATION_SERVICE_URL",
        "COLLABORATOR_TIMEOUT_SECONDS",
    ],
)
service = PaymentService(SessionLocal)
orchestrator = PaymentOrchestrator(
    service,
    OrderClient(settings.order_service_url),
    StockClient(settings.product_service_url),
    NotificationClient(settings.notification_service_url),
)

app = FastAPI(title="Marketplace Payment Service")
install_http_metrics(app)
install_error_handlers(app)
instrument_app(app)


@app.post("/payments", response_model=PaymentResponse, status_code=201)
def create_payment(req: PaymentCreateRequest):
    """Create a payment in `PENDING` for one order."""

    payment = service.create(req)
    logger.info("payment_created payment_id=%s order_id=%s", payment.id, payment.order_id)
    return payment


@app.get("/payments", response_model=list[PaymentResponse])
def list_payments(status: PaymentStatus | None = None):
    return service.list_all(status)


@app.get("/payments/{order_id}", response_model=PaymentResponse)
def get_payment(order_id: str):
    """Fetch the payment recorded for one order."""

    return service.get_by_order_id(order_id)


@app.put("/payments/{order_id}/update", response_model=PaymentResponse, status_code=202)
def update_payment_status(
    order_id: str,
    req: PaymentStatusUpdate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(caller_identity),
):
    """Write the new status; SUCCEEDED schedules stock + notification after the response."""

    transition = orchestrator.transition_status(order_id, req.status, caller)
    if transition.job is not None:
        background_tasks.add_task(orchestrator.fulfill, transition.job)
    return transition.payment


@app.delete("/payments/{payment_id}", status_code=204)
def delete_payment(payment_id: str):
    if not service.delete(payment_id):
        raise NotFound(f"payment {payment_id} not found")
    return Response(status_code=204)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
