"""
Observability

Tracing, metrics and structured logging built on OpenTelemetry.
"""

from .logging import StructuredFormatter, configure_logging
from .metrics import get_meter, init_metrics, record_counter, record_histogram
from .tracing import create_span, get_current_span, get_trace_id, get_tracer, init_tracing

__all__ = [
    # Tracing
    "init_tracing",
    "get_tracer",
    "get_current_span",
    "get_trace_id",
    "create_span",
    # Metrics
    "init_metrics",
    "get_meter",
    "record_counter",
    "record_histogram",
    # Logging
    "configure_logging",
    "StructuredFormatter",
]
