"""Telemetry setup for OpenTelemetry traces and metrics.

Configures tracing and metrics export over OTLP when ``OTLP_ENABLED=true``.
Otherwise SDK providers are installed without exporters, so spans and
metrics are recorded in-process and dropped.
"""

import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from conductor.config import ConductorConfig

# Suppress gRPC warnings when collector is unavailable
logging.getLogger("opentelemetry.exporter.otlp.proto.grpc").setLevel(logging.ERROR)

# Module-level metric instruments (set by create_metrics)
runs_counter: metrics.Counter
steps_counter: metrics.Counter
delegations_counter: metrics.Counter
planner_fallbacks_counter: metrics.Counter
run_duration: metrics.Histogram


def setup_telemetry(config: ConductorConfig) -> tuple[trace.Tracer, metrics.Meter]:
    """Initialize OpenTelemetry, exporting over OTLP when enabled.

    Args:
        config: Conductor configuration with OTLP endpoint and service name

    Returns:
        Tuple of (tracer, meter) for creating spans and recording metrics
    """
    otlp_enabled = os.getenv("OTLP_ENABLED", "false").lower() == "true"

    if otlp_enabled and config.otlp_endpoint:
        # Exporters are an optional extra; import only when needed
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        trace_provider = TracerProvider()
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint))
        )
        trace.set_tracer_provider(trace_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint)
        )
        metrics.set_meter_provider(MeterProvider(metric_readers=[metric_reader]))
    else:
        trace.set_tracer_provider(TracerProvider())
        metrics.set_meter_provider(MeterProvider())

    tracer = trace.get_tracer(config.service_name)
    meter = metrics.get_meter(config.service_name)

    return tracer, meter


def create_metrics(meter: metrics.Meter) -> None:
    """Create metric instruments for orchestration runs.

    Counters:
    - Runs completed (by mode and exit code)
    - Loop steps executed (by action type)
    - Delegations dispatched (by target agent)
    - Planner replies that fell back to the default response

    Histograms:
    - Run duration

    Args:
        meter: OpenTelemetry meter for creating instruments
    """
    global runs_counter, steps_counter, delegations_counter
    global planner_fallbacks_counter, run_duration

    runs_counter = meter.create_counter(
        "conductor_runs_total",
        description="Total runs completed",
    )

    steps_counter = meter.create_counter(
        "conductor_steps_total",
        description="Total orchestration loop steps",
    )

    delegations_counter = meter.create_counter(
        "conductor_delegations_total",
        description="Total delegations to sub-agents",
    )

    planner_fallbacks_counter = meter.create_counter(
        "conductor_planner_fallbacks_total",
        description="Planner replies that could not be parsed",
    )

    run_duration = meter.create_histogram(
        "conductor_run_duration_seconds",
        description="Run duration",
        unit="s",
    )


def record(instrument_name: str, value: float, attributes: dict | None = None) -> None:
    """Record a value on a module instrument if it has been created.

    Counters are incremented and histograms record the value. Unknown or
    not-yet-created instruments are ignored.
    """
    instrument = globals().get(instrument_name)
    if instrument is None:
        return
    if hasattr(instrument, "add"):
        instrument.add(value, attributes or {})
    else:
        instrument.record(value, attributes or {})
