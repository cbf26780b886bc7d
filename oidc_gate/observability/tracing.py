"""
OpenTelemetry tracing setup for oidc-gate.
"""

from typing import Optional
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter


def setup_tracing(
    service_name: str = "oidc-gate",
    otlp_endpoint: Optional[str] = None,
    enable_console: bool = False,
    app=None
) -> None:
    """
    Setup OpenTelemetry tracing.

    Args:
        service_name: Service name for traces
        otlp_endpoint: OTLP collector endpoint
        enable_console: Enable console span exporter
        app: FastAPI application to instrument
    """
    tracer_provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(tracer_provider)

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
            tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
        except ImportError:
            print("OTLP exporter not available")

    if enable_console:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(ConsoleSpanExporter())
        )

    # Auto-instrumentation
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()


def get_tracer(name: str = "oidc-gate"):
    """Get a tracer instance."""
    return trace.get_tracer(name)


class TracingContext:
    """Helper for creating custom spans."""

    def __init__(self, tracer_name: str = "oidc-gate"):
        self.tracer = get_tracer(tracer_name)

    def start_span(self, name: str, attributes: Optional[dict] = None):
        """Start a new span."""
        span = self.tracer.start_span(name)
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, str(value))
        return span

    def trace_authenticate(self, scheme: Optional[str]):
        """Trace the underlying authentication check."""
        return self.start_span("auth.authenticate", {"auth.scheme": scheme or ""})

    def trace_challenge(self, scheme: Optional[str]):
        """Trace a challenge."""
        return self.start_span("auth.challenge", {"auth.scheme": scheme or ""})
