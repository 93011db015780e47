"""
OpenTelemetry Metrics

Counters for issue creation and delivery outcomes.
"""

import logging
from typing import Any, Dict, Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

logger = logging.getLogger(__name__)

_meter: Optional[metrics.Meter] = None

_counters: Dict[str, metrics.Counter] = {}
_histograms: Dict[str, metrics.Histogram] = {}


def init_metrics(
    service_name: str = "newsletter-service",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    export_interval_ms: int = 60000
) -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Args:
        service_name: Name of the service
        otlp_endpoint: OTLP exporter endpoint
        console_export: Enable console export for debugging
        export_interval_ms: Export interval in milliseconds
    """
    global _meter

    readers = []

    if otlp_endpoint:
        readers.append(PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True),
            export_interval_millis=export_interval_ms
        ))
        logger.info("OTel metrics: OTLP exporter configured -> %s", otlp_endpoint)

    if console_export:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms
        ))
        logger.info("OTel metrics: Console exporter enabled")

    provider = MeterProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        metric_readers=readers
    )
    metrics.set_meter_provider(provider)

    _meter = metrics.get_meter(service_name)
    _init_standard_metrics()

    logger.info("OTel metrics initialized: %s", service_name)
    return _meter


def _init_standard_metrics():
    meter = get_meter()

    _counters["newsletter_issues_created_total"] = meter.create_counter(
        "newsletter_issues_created_total",
        description="Newsletter issues accepted for delivery",
        unit="1"
    )
    _counters["idempotent_replays_total"] = meter.create_counter(
        "idempotent_replays_total",
        description="Requests answered from a saved response",
        unit="1"
    )
    _counters["delivery_tasks_claimed_total"] = meter.create_counter(
        "delivery_tasks_claimed_total",
        description="Delivery tasks claimed by workers",
        unit="1"
    )
    _counters["delivery_tasks_delivered_total"] = meter.create_counter(
        "delivery_tasks_delivered_total",
        description="Delivery tasks sent successfully",
        unit="1"
    )
    _counters["delivery_tasks_retried_total"] = meter.create_counter(
        "delivery_tasks_retried_total",
        description="Delivery tasks rescheduled after a transient failure",
        unit="1"
    )
    _counters["delivery_tasks_poisoned_total"] = meter.create_counter(
        "delivery_tasks_poisoned_total",
        description="Delivery tasks moved to failed",
        unit="1"
    )
    _counters["delivery_claims_released_total"] = meter.create_counter(
        "delivery_claims_released_total",
        description="Stale claims returned to pending by the lease sweep",
        unit="1"
    )

    _histograms["delivery_send_duration_seconds"] = meter.create_histogram(
        "delivery_send_duration_seconds",
        description="Mail transport call duration",
        unit="s"
    )


def get_meter() -> metrics.Meter:
    """Get the global meter."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("newsletter-service")
    return _meter


def record_counter(name: str, value: int = 1, attributes: Optional[Dict[str, Any]] = None):
    """Record a counter metric. No-op until init_metrics() has run."""
    if name in _counters:
        _counters[name].add(value, attributes or {})


def record_histogram(name: str, value: float, attributes: Optional[Dict[str, Any]] = None):
    if name in _histograms:
        _histograms[name].record(value, attributes or {})
