"""Structured JSON logging with request and payment context fields."""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from flask import has_request_context, request
from pythonjsonlogger.json import JsonFormatter

reference_ctx: ContextVar[str] = ContextVar("external_reference", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")


class ContextFilter(logging.Filter):
    """Inject environment, request and payment identifiers into every record."""

    def __init__(self, environment: str = "development") -> None:
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self.environment
        if has_request_context():
            record.method = request.method
            record.path = request.path
        else:
            record.method = ""
            record.path = ""
        record.external_reference = reference_ctx.get()
        record.payment_id = payment_id_ctx.get()
        return True


def configure_logging(level: str = "INFO", environment: str = "development") -> None:
    """Configure the root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter(environment)
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(environment)s %(method)s %(path)s "
        "%(payment_id)s %(external_reference)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

