"""
OpenTelemetry tracing.

HTTP requests and SQL statements are instrumented automatically; realtime
frames, which bypass the HTTP instrumentation, open spans through traced().
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span

from supportdesk.config import settings

_tracer = trace.get_tracer("supportdesk")


def setup_tracing() -> None:
    """Install a TracerProvider exporting over OTLP when tracing is enabled."""
    if not settings.tracing_enabled:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": settings.service_name, "service.version": settings.api_version}
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace HTTP and WebSocket requests; /metrics scrapes are skipped."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace statements on an async engine."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


@contextmanager
def traced(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Span around a unit of work outside the HTTP instrumentation.

    None attributes are dropped; UUIDs and other objects are stringified.
    """
    with _tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is None:
                continue
            if not isinstance(value, (str, int, float, bool)):
                value = str(value)
            span.set_attribute(key, value)
        yield span
