"""
OpenTelemetry Tracing Setup
===========================
Optional tracing for pipeline runs: one span per run, per stage and per
container launch.

Disabled unless SECPIPE_ENABLE_TRACING is set; spans then go to the OTLP HTTP
endpoint from OTLP_ENDPOINT.
"""

import atexit
from typing import Any, Mapping, Optional

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from secpipe.config import TRACING

SERVICE_NAME_VALUE = TRACING.SERVICE_NAME
OTLP_ENDPOINT = TRACING.OTLP_ENDPOINT
ENABLE_TRACING = TRACING.ENABLED

MAX_ATTRIBUTE_LENGTH = 2048

# Set once per process by init_tracing; the provider only when exporting
_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def _cleanup_tracing() -> None:
    """Shutdown the tracer provider to flush pending spans."""
    if _provider is None:
        return
    try:
        _provider.shutdown()
    except Exception as e:
        logger.debug("Tracer provider shutdown failed: {}", e)


def setup_tracing(service_name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing with OTLP export.

    Args:
        service_name: Name of the service for trace identification

    Returns:
        Configured tracer instance
    """
    global _provider

    resource = Resource.create({SERVICE_NAME: service_name})
    _provider = TracerProvider(resource=resource)
    _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT)))
    trace.set_tracer_provider(_provider)

    # Flush pending spans on exit
    atexit.register(_cleanup_tracing)

    return trace.get_tracer(service_name)


def get_tracer(name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


def safe_set_span_attributes(span: Any, attributes: Mapping[str, Any]) -> None:
    """Set run attributes on a span; no-op for spans without set_attribute.

    None values are skipped, strings are capped at MAX_ATTRIBUTE_LENGTH and
    sequences (stage tool lists) are sent as lists of strings.
    """
    setter = getattr(span, "set_attribute", None)
    if not callable(setter):
        return

    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, str):
            setter(key, value[:MAX_ATTRIBUTE_LENGTH])
        elif isinstance(value, (bool, int)):
            setter(key, value)
        elif isinstance(value, (list, tuple)):
            setter(key, [str(v)[:MAX_ATTRIBUTE_LENGTH] for v in value])
        else:
            setter(key, str(value)[:MAX_ATTRIBUTE_LENGTH])


def init_tracing() -> trace.Tracer:
    """Return the process tracer, exporting spans only when SECPIPE_ENABLE_TRACING is set."""
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing() if ENABLE_TRACING else get_tracer()
    return _tracer
