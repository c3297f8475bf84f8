import logging
from collections.abc import MutableMapping
from typing import Any

import structlog
from opentelemetry.trace import get_current_span


def configure_logging(log_level: str = "info") -> None:
    """Configure structlog to output JSON format for structured logging."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_otel_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_otel_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add OpenTelemetry trace and span ids to log records."""
    span = get_current_span()
    if span.is_recording():
        span_context = span.get_span_context()
        if span_context and span_context.is_valid:
            event_dict["trace_id"] = format(span_context.trace_id, "032x")
            event_dict["span_id"] = format(span_context.span_id, "016x")
    return event_dict


def bind_payment_id(payment_id: str) -> None:
    """Bind payment_id to the structlog context for correlation."""
    structlog.contextvars.bind_contextvars(payment_id=payment_id)


def clear_payment_context() -> None:
    structlog.contextvars.unbind_contextvars("payment_id")
