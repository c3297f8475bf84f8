"""
Tracing setup for payment verification spans.
"""

from importlib.metadata import PackageNotFoundError, version

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .config.telemetry import TelemetrySettings

logger = structlog.get_logger(__name__)

SERVICE_NAMESPACE = "solana-payments"
DISTRIBUTION = "solana-payments"


def _service_version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "unknown"


def build_resource(settings: TelemetrySettings, network: str | None = None) -> Resource:
    """
    Resource attributes attached to every exported span.

    The ledger network (devnet, mainnet-beta, ...) is reported as the
    deployment environment so traces from different clusters stay apart.

    Raises:
        ValueError: If the configured service name is blank
    """
    service_name = settings.otel_service_name.lower().strip()
    if not service_name:
        raise ValueError(
            "service_name must be provided for OpenTelemetry initialization"
        )

    attributes = {
        "service.name": service_name,
        "service.namespace": SERVICE_NAMESPACE,
        "service.version": _service_version(),
    }
    if network:
        attributes["deployment.environment"] = network
    return Resource.create(attributes)


def init_telemetry(
    settings: TelemetrySettings, network: str | None = None
) -> trace.Tracer:
    """
    Installs a global tracer provider exporting over OTLP/gRPC.

    Falls back to the console exporter when the OTLP exporter cannot be
    built.

    Returns:
        Tracer named after the configured service
    """
    resource = build_resource(settings, network)
    endpoint = str(settings.otel_exporter_otlp_endpoint).rstrip("/")
    provider = TracerProvider(resource=resource)

    try:
        exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)
    except Exception as e:
        logger.warning("otlp_exporter_init_failed", endpoint=endpoint, error=str(e))
        exporter = ConsoleSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(resource.attributes["service.name"])
