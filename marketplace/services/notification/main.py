"""Notification service: email dispatch endpoint for other services."""

from fastapi import FastAPI

from marketplace.common.config import settings
from marketplace.common.db import SessionLocal
from marketplace.common.errors import install_error_handlers
from marketplace.common.logging import configure_logging
from marketplace.common.metrics import install_http_metrics, metrics_response
from marketplace.common.startup import log_startup_config
from marketplace.common.tracing import instrument_app, setup_tracing
from marketplace.services.notification.schemas import SendEmailRequest, SendEmailResponse
from marketplace.services.notification.service import NotificationService
from marketplace.services.notification.transport import transport_from_settings

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASSWORD"],
)
service = NotificationService(SessionLocal, transport_from_settings())

app = FastAPI(title="Marketplace Notification Service")
install_http_metrics(app)
install_error_handlers(app)
instrument_app(app)


@app.post("/notify/email", response_model=SendEmailResponse)
async def send_email(req: SendEmailRequest):
    """Send one email to `to`."""

    message_id = await service.send_email(req)
    return SendEmailResponse(message="Email sent successfully", messageId=message_id)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()
