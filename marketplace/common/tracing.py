"""OpenTelemetry setup helpers used by each FastAPI service."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from marketplace.common.config import settings

# Probe and scrape endpoints produce no spans.
UNTRACED_PATHS = "health,metrics"


def setup_tracing(service_name: str) -> bool:
    """Register an OTLP/HTTP tracer provider when tracing is enabled.

    Returns whether a provider was installed.
    """

    if not settings.otel_enabled:
        return False
    resource = Resource.create({"service.name": service_name, "service.namespace": "marketplace"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return True


def instrument_app(app: FastAPI) -> None:
    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_PATHS)
