"""Tracing for the footage pipeline.

One tracer provider per process, installed from settings at startup. The
middleware opens a server span per request, the dispatcher opens a
``transcode.dispatch`` span tagged with the asset and worker backend, and
the log formatter stamps records with the active ids from ``trace_ids``.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from dashworld.core.config import Settings

logger = logging.getLogger(__name__)

TRACER_NAME = "dashworld"

_provider: Optional[TracerProvider] = None


def setup_tracing(config: Settings) -> trace.Tracer:
    """Install the process tracer provider.

    Spans are exported to ``OTLP_ENDPOINT`` when it is set and the ``otlp``
    extra is installed. With ``DEBUG`` on they are also printed to stdout.
    """
    global _provider

    _provider = TracerProvider(
        resource=Resource.create({
            SERVICE_NAME: config.PROJECT_NAME,
            SERVICE_VERSION: config.VERSION,
            "deployment.environment": config.ENVIRONMENT,
        })
    )

    if config.OTLP_ENDPOINT:
        _add_otlp_exporter(_provider, config.OTLP_ENDPOINT)
    if config.DEBUG:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    set_global_textmap(TraceContextTextMapPropagator())

    logger.info(
        "Tracing ready",
        extra={"otlp_endpoint": config.OTLP_ENDPOINT, "console_export": config.DEBUG},
    )
    return trace.get_tracer(TRACER_NAME, config.VERSION)


def _add_otlp_exporter(provider: TracerProvider, endpoint: str) -> None:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP_ENDPOINT is set but the otlp extra is not installed; spans stay local")
        return
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))


def trace_ids() -> tuple[Optional[str], Optional[str]]:
    """Hex ``(trace_id, span_id)`` of the active span, or ``(None, None)``."""
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return None, None
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
) -> Iterator[Span]:
    """Run the block inside a child of the active span."""
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, kind=kind, attributes=attributes or {}) as span:
        yield span


def add_span_attributes(attributes: dict) -> None:
    span = trace.get_current_span()
    for key, value in attributes.items():
        span.set_attribute(key, value)


def record_exception(exception: BaseException, attributes: Optional[dict] = None) -> None:
    """Attach the exception to the active span and mark the span failed."""
    span = trace.get_current_span()
    span.record_exception(exception, attributes=attributes)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def shutdown_tracing() -> None:
    """Flush buffered spans. Called from the application lifespan."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None
