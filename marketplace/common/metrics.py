"""Prometheus metric definitions and HTTP instrumentation shared across services."""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response

from marketplace.common.config import settings
from marketplace.common.logging import trace_id_ctx


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
inquiries_total = Counter("inquiries_total", "Inquiry resolutions by outcome", ["service", "outcome"])
chat_messages_published_total = Counter(
    "chat_messages_published_total", "Chat messages persisted and broadcast", ["service"]
)
chat_publish_failures_total = Counter(
    "chat_publish_failures_total", "Chat publishes rejected or not persisted", ["service", "reason"]
)
chat_subscribers_total = Counter("chat_subscribers_total", "Room subscriptions accepted", ["service"])
payment_status_transitions_total = Counter(
    "payment_status_transitions_total", "Payment status writes", ["service", "status"]
)
saga_steps_total = Counter("saga_steps_total", "Fulfillment saga step outcomes", ["service", "step", "result"])
saga_step_duration_seconds = Histogram(
    "saga_step_duration_seconds", "Fulfillment saga step duration seconds", ["service", "step"]
)
stock_decrements_rejected_total = Counter(
    "stock_decrements_rejected_total", "Stock decrements rejected for insufficient stock", ["service"]
)
emails_total = Counter("emails_total", "Email dispatch attempts by result", ["service", "result"])


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")


def install_http_metrics(app: FastAPI) -> None:
    """Record request count/latency and bind a trace id for every HTTP call."""

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        trace_token = trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
            trace_id_ctx.reset(trace_token)
