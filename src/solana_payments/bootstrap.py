"""
Process-level wiring: logging, tracing and a PaymentService built from the
environment.
"""

from typing import Any

import structlog

from .config import Settings, get_settings
from .logging_config import configure_logging
from .service import PaymentService
from .telemetry import init_telemetry

logger = structlog.get_logger(__name__)


def build_service(settings: Settings | None = None, **kwargs: Any) -> PaymentService:
    """
    Configures logging (and tracing when enabled) and returns a PaymentService.

    Extra keyword arguments are passed to PaymentService.from_settings.
    """
    settings = settings or get_settings()
    configure_logging(settings.telemetry.log_level)

    if settings.telemetry.otel_enabled:
        init_telemetry(settings.telemetry, settings.ledger.network)
        logger.info(
            "telemetry_initialized",
            service_name=settings.telemetry.otel_service_name,
        )

    service = PaymentService.from_settings(settings, **kwargs)
    logger.info(
        "payment_service_ready",
        treasury_address=settings.payments.treasury_address,
        network=settings.ledger.network,
        rpc_url=settings.ledger.resolved_rpc_url,
    )
    return service
