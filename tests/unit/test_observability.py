"""Unit tests for structured logging, audit logging and metrics."""

import json
import logging
import sys

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from uta.lib.logging_config import AuditLogger, StructuredFormatter
from uta.lib.metrics import AdapterCallMetrics, MetricsCollector


def _record(message="hello", exc_info=None, **extra):
    record = logging.LogRecord("uta.test", logging.INFO, __file__, 10, message, None, exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test JSON log formatting."""

    def test_basic_fields_and_extras(self):
        formatter = StructuredFormatter(include_trace=False, extra_fields={"service": "uta-bridge"})
        entry = json.loads(formatter.format(_record(session_id="s-1")))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "uta.test"
        assert entry["message"] == "hello"
        assert entry["session_id"] == "s-1"
        assert entry["service"] == "uta-bridge"
        assert "trace_id" not in entry

    def test_exception_details(self):
        formatter = StructuredFormatter(include_trace=False)
        try:
            raise ValueError("bad plan")
        except ValueError:
            entry = json.loads(formatter.format(_record(exc_info=sys.exc_info())))

        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad plan"
        assert "Traceback" in entry["exception"]["traceback"]

    def test_unserializable_extras_are_stringified(self):
        formatter = StructuredFormatter(include_trace=False)
        entry = json.loads(formatter.format(_record(payload=object())))

        assert entry["payload"].startswith("<object object")


class TestAuditLogger:
    """Test audit entries carry structured fields."""

    def test_session_event(self, caplog):
        with caplog.at_level(logging.INFO, logger="uta.audit"):
            AuditLogger().log_session_event("session_created", "s-1", user_id="u-1", adapter_id="local")

        record = caplog.records[-1]
        assert record.audit_type == "session"
        assert record.event_type == "session_created"
        assert record.session_id == "s-1"

    def test_adapter_event(self, caplog):
        with caplog.at_level(logging.INFO, logger="uta.audit"):
            AuditLogger().log_adapter_event("failover", "local", session_id="s-1", metadata={"from": "openai"})

        record = caplog.records[-1]
        assert record.audit_type == "adapter"
        assert record.metadata == {"from": "openai"}


class TestMetricsCollector:
    """Test metric instruments record through an in-memory reader."""

    @pytest.fixture
    def reader(self):
        return InMemoryMetricReader()

    @pytest.fixture
    def collector(self, reader):
        provider = MeterProvider(metric_readers=[reader])
        return MetricsCollector(provider.get_meter("test"))

    @staticmethod
    def _points(reader, name):
        data = reader.get_metrics_data()
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        return list(metric.data.data_points)
        return []

    def test_adapter_call(self, collector, reader):
        collector.record_adapter_call(AdapterCallMetrics("openai", 120, False, "ProtocolError"))

        invocations = self._points(reader, "uta_adapter_invocations_total")
        errors = self._points(reader, "uta_adapter_errors_total")
        assert invocations[0].value == 1
        assert dict(invocations[0].attributes) == {"adapter_id": "openai", "success": "false"}
        assert errors[0].attributes["error_type"] == "ProtocolError"

    def test_tool_calls_and_retries(self, collector, reader):
        collector.record_tool_call("claude-api", "email", "send_one", False)
        collector.record_tool_call("claude-api", "email", "send_one", False)
        collector.record_plan_retry("ollama", 2)

        tool_calls = self._points(reader, "uta_tool_calls_total")
        assert tool_calls[0].value == 2
        assert tool_calls[0].attributes["tool"] == "email"
        assert self._points(reader, "uta_plan_retries_total")[0].value == 1

    def test_session_gauge(self, collector, reader):
        collector.record_session_opened("local")
        collector.record_session_opened("local")
        collector.record_session_closed("local")

        assert self._points(reader, "uta_active_sessions")[0].value == 1
