"""
OpenTelemetry tracing setup.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from job_throttle import __version__
from job_throttle.config import Settings, get_settings

# Global tracer instance
_tracer: Tracer | None = None


def setup_tracing(
    settings: Settings | None = None,
    enable_console_export: bool = False,
) -> Tracer:
    """
    Set up OpenTelemetry tracing.

    With ``otel_enabled`` off the global provider is left alone, so spans go
    wherever the host process sends them (nowhere by default).

    Args:
        settings: Settings to read the exporter configuration from.
        enable_console_export: If True, also export spans to console.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer

    settings = settings or get_settings()

    if settings.otel_enabled:
        resource = Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
            }
        )
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=settings.otel_exporter_otlp_endpoint,
                    insecure=True,
                )
            )
        )

        if enable_console_export:
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(settings.otel_service_name)
    return _tracer


def get_tracer() -> Tracer:
    """Get the tracer instance, setting tracing up on first use."""
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing()
    return _tracer


def set_span_attributes(span: Any, **attributes: Any) -> None:
    """
    Set attributes on a span, skipping None values.

    Args:
        span: The span to annotate.
        **attributes: Span attributes.
    """
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, str(value))
