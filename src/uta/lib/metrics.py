"""
Metrics collection for bridge adapters and sessions.

Exposes OpenTelemetry instruments for adapter invocations, tool calls and
session counts. Instruments are created from the global meter, which is a
no-op until observability is initialized.
"""

from dataclasses import dataclass
from typing import Optional

from opentelemetry import metrics

from uta.lib.observability import get_meter


@dataclass
class AdapterCallMetrics:
    """Metrics for one top-level adapter invocation."""
    adapter_id: str
    duration_ms: int
    success: bool
    error_type: Optional[str] = None


class MetricsCollector:
    """Collects and manages bridge metrics."""

    def __init__(self, meter: Optional[metrics.Meter] = None):
        self.meter = meter or get_meter()
        self._setup_instruments()

    def _setup_instruments(self) -> None:
        """Setup OpenTelemetry metric instruments."""
        self.adapter_invocations = self.meter.create_counter(
            name="uta_adapter_invocations_total",
            description="Adapter invocations by adapter and outcome",
            unit="1"
        )

        self.adapter_duration = self.meter.create_histogram(
            name="uta_adapter_duration_ms",
            description="Adapter turn duration",
            unit="ms"
        )

        self.adapter_errors = self.meter.create_counter(
            name="uta_adapter_errors_total",
            description="Adapter failures by error type",
            unit="1"
        )

        self.tool_calls = self.meter.create_counter(
            name="uta_tool_calls_total",
            description="Tool dispatcher invocations by tool and outcome",
            unit="1"
        )

        self.plan_retries = self.meter.create_counter(
            name="uta_plan_retries_total",
            description="Self-hosted plan phase retries",
            unit="1"
        )

        self.active_sessions = self.meter.create_up_down_counter(
            name="uta_active_sessions",
            description="Number of live bridge sessions",
            unit="1"
        )

    def record_adapter_call(self, call: AdapterCallMetrics) -> None:
        """Record a top-level adapter invocation."""
        attributes = {
            "adapter_id": call.adapter_id,
            "success": str(call.success).lower()
        }

        self.adapter_invocations.add(1, attributes)
        self.adapter_duration.record(call.duration_ms, attributes)

        if not call.success and call.error_type:
            self.adapter_errors.add(1, {
                "adapter_id": call.adapter_id,
                "error_type": call.error_type
            })

    def record_tool_call(self, adapter_id: str, tool: str, action: str, success: bool) -> None:
        """Record a tool dispatcher invocation."""
        self.tool_calls.add(1, {
            "adapter_id": adapter_id,
            "tool": tool,
            "action": action,
            "success": str(success).lower()
        })

    def record_plan_retry(self, adapter_id: str, attempt: int) -> None:
        """Record a plan phase retry."""
        self.plan_retries.add(1, {"adapter_id": adapter_id, "attempt": str(attempt)})

    def record_session_opened(self, adapter_id: str) -> None:
        """Record a new bridge session."""
        self.active_sessions.add(1, {"adapter_id": adapter_id})

    def record_session_closed(self, adapter_id: str) -> None:
        """Record a removed bridge session."""
        self.active_sessions.add(-1, {"adapter_id": adapter_id})


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def initialize_metrics(meter: Optional[metrics.Meter] = None) -> MetricsCollector:
    """Initialize global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector, creating a default one on first use."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
