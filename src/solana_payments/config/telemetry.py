from pydantic import BaseModel, HttpUrl


class TelemetrySettings(BaseModel):
    log_level: str = "info"

    # Tracing
    otel_enabled: bool = False
    otel_service_name: str = "solana-payments"
    otel_exporter_otlp_endpoint: HttpUrl = "http://jaeger:4317"
