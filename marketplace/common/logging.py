"""Structured JSON logging with request/order/payment context fields."""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from marketplace.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")

_FIELDS = "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(order_id)s %(payment_id)s %(message)s"


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.order_id = order_id_ctx.get()
        record.payment_id = payment_id_ctx.get()
        return True


def configure_logging(level: str | None = None) -> None:
    """Route every record through one JSON handler on stdout.

    Replaces any existing root handlers, so repeated calls (several service apps
    imported into one process) leave exactly one handler behind.
    """

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter(_FIELDS, rename_fields={"levelname": "level", "asctime": "timestamp"}))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel((level or settings.log_level).upper())


@contextmanager
def log_context(trace_id: str | None = None, order_id: str | None = None, payment_id: str | None = None):
    """Bind correlation ids for the enclosed block; unset arguments are left alone."""

    tokens = []
    for var, value in ((trace_id_ctx, trace_id), (order_id_ctx, order_id), (payment_id_ctx, payment_id)):
        if value is not None:
            tokens.append((var, var.set(value)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


logger = logging.getLogger("marketplace")
