"""OpenTelemetry configuration for tracing diagnostic runs."""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from kubetrbl import __version__
from kubetrbl.core.config import Settings

logger = logging.getLogger(__name__)


def setup_telemetry(settings: Settings) -> TracerProvider | None:
    """Configure OpenTelemetry tracing for a diagnostic run.

    Args:
        settings: Application settings

    Returns:
        The installed tracer provider, or None when tracing is disabled
    """
    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled")
        return None

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.environment == "development":
        # Spans on the console only when debugging, they interleave with prompts
        if settings.debug:
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        try:
            otlp_exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        except Exception as e:
            logger.warning(f"Failed to configure OTLP exporter: {e}")

    trace.set_tracer_provider(provider)

    logger.info(
        f"OpenTelemetry configured: service={settings.otel_service_name}, "
        f"environment={settings.environment}"
    )
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for the given module name.

    Args:
        name: Module name (typically __name__)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
