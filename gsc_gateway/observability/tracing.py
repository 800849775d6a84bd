"""
OpenTelemetry tracing for the gateway.

Spans are exported over OTLP when `tracing_enabled` is set; otherwise the
global no-op provider absorbs them and `traced` costs nothing.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span
from sqlalchemy.ext.asyncio import AsyncEngine

from gsc_gateway.config import settings

_tracer = trace.get_tracer("gsc_gateway")


def setup_tracing(app: FastAPI) -> None:
    """Install the OTLP exporter and instrument the application's requests."""
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
    FastAPIInstrumentor.instrument_app(app)


def instrument_engine(engine: AsyncEngine) -> None:
    """Trace queries issued through an async engine."""
    if settings.tracing_enabled:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def set_attributes(span: Span, **attributes: Any) -> None:
    """Set span attributes, skipping None and stringifying non-primitives."""
    for key, value in attributes.items():
        if value is None:
            continue
        span.set_attribute(key, value if isinstance(value, (str, int, float, bool)) else str(value))


@contextmanager
def traced(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run a block inside a span.

    An exception leaving the block is recorded on the span and marks it
    as failed before propagating.
    """
    with _tracer.start_as_current_span(name) as span:
        set_attributes(span, **attributes)
        yield span
