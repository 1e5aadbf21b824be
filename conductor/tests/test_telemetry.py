"""Tests for telemetry setup and metric recording."""

import os
from unittest.mock import MagicMock, patch

import pytest

from conductor import telemetry
from conductor.config import ConductorConfig


class TestSetupTelemetry:
    """Test setup_telemetry function."""

    def test_returns_tracer_and_meter(self):
        """Should return a usable tracer and meter."""
        with patch.dict(os.environ, {"OTLP_ENABLED": "false"}):
            tracer, meter = telemetry.setup_telemetry(ConductorConfig())

        assert tracer is not None
        assert meter is not None
        with tracer.start_as_current_span("test-span") as span:
            span.set_attribute("k", "v")


class TestCreateMetrics:
    """Test create_metrics function."""

    def test_creates_counters(self):
        """Should create the conductor counters."""
        meter = MagicMock()

        telemetry.create_metrics(meter)

        counter_names = [call[0][0] for call in meter.create_counter.call_args_list]
        assert counter_names == [
            "conductor_runs_total",
            "conductor_steps_total",
            "conductor_delegations_total",
            "conductor_planner_fallbacks_total",
        ]

    def test_creates_duration_histogram(self):
        """Should create the run duration histogram in seconds."""
        meter = MagicMock()

        telemetry.create_metrics(meter)

        meter.create_histogram.assert_called_once()
        args, kwargs = meter.create_histogram.call_args
        assert args[0] == "conductor_run_duration_seconds"
        assert kwargs["unit"] == "s"


class TestRecord:
    """Test recording values on module instruments."""

    @pytest.fixture(autouse=True)
    def instruments(self, monkeypatch):
        counter = MagicMock(spec=["add"])
        histogram = MagicMock(spec=["record"])
        monkeypatch.setattr(telemetry, "runs_counter", counter, raising=False)
        monkeypatch.setattr(telemetry, "run_duration", histogram, raising=False)
        return counter, histogram

    def test_counter_add(self, instruments):
        counter, _ = instruments
        telemetry.record("runs_counter", 1, {"mode": "ai-loop"})

        counter.add.assert_called_once_with(1, {"mode": "ai-loop"})

    def test_histogram_record(self, instruments):
        _, histogram = instruments
        telemetry.record("run_duration", 2.5)

        histogram.record.assert_called_once_with(2.5, {})

    def test_unknown_instrument_ignored(self):
        telemetry.record("no_such_instrument", 1)
