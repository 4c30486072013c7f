"""
OpenTelemetry tracing for the reconciliation engine.

A cycle is one ``reconciliation.cycle`` span with a ``reconciliation.account``
child per account, so a slow Graph API call or store write is attributed to
the account it belongs to. HTTP requests get a span from the API middleware.

Tracing is opt-in (``TRACING_ENABLED``). Until ``setup_tracing`` runs, the
global provider is OpenTelemetry's no-op one and every helper here is free.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Spans go to an OTLP gRPC collector through a batch processor. A custom
    exporter (e.g. ``InMemorySpanExporter`` in tests) is wired synchronously
    instead, so finished spans are visible immediately.

    Args:
        service_name: ``service.name`` resource attribute.
        otlp_endpoint: Collector endpoint, default ``http://localhost:4317``.
        exporter: Replaces the OTLP exporter when given.

    Returns:
        The installed TracerProvider.
    """
    global _provider

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        endpoint = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
    else:
        endpoint = "(custom exporter)"
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _provider = provider

    logger.info("Tracing enabled: service=%s endpoint=%s", service_name, endpoint)
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans. Short-lived commands call this before exiting."""
    if _provider is None:
        return
    _provider.force_flush()


def is_tracing_enabled() -> bool:
    return _provider is not None


def get_tracer(name: str) -> Tracer:
    """Named tracer from the global provider (a no-op tracer if tracing is off)."""
    return trace.get_tracer(name)


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Run a block inside a new span.

    Exceptions leaving the block mark the span as ERROR, are recorded on
    it, and are re-raised.

    Usage:
        with traced(tracer, "reconciliation.account", {"account.id": "123"}) as span:
            span.set_attribute("account.samples", 12)
    """
    with tracer.start_as_current_span(
        name,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: add ``trace_id``/``span_id`` while a span is active."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict
