"""
OpenTelemetry configuration with OTLP exporters for the bridge.

Provides traces and metrics for bridge turns and tool invocations. When
telemetry is not initialized, the global (no-op) providers are used so the
turn path never depends on an exporter being reachable.
"""

import logging
from typing import Dict, Any, Optional

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor


logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "uta.bridge"


class TelemetrySettings:
    """Configuration for OpenTelemetry setup."""

    def __init__(self, config: Dict[str, Any]):
        self.service_name = config.get("service_name", "uta-bridge")
        self.service_version = config.get("service_version", "1.0.0")
        self.environment = config.get("environment", "development")
        self.otlp_endpoint = config.get("otlp_endpoint", "http://localhost:4317")
        self.export_timeout = config.get("export_timeout", 30)
        self.trace_sampling_ratio = config.get("trace_sampling_ratio", 1.0)
        self.resource_attributes = config.get("resource_attributes", {})


class TelemetryManager:
    """Manages OpenTelemetry setup and lifecycle."""

    def __init__(self, settings: TelemetrySettings):
        self.settings = settings
        self._initialized = False
        self._resource: Optional[Resource] = None

    def initialize(self) -> None:
        """Initialize OpenTelemetry with OTLP exporters."""
        if self._initialized:
            logger.warning("Telemetry already initialized")
            return

        self._resource = Resource.create({
            "service.name": self.settings.service_name,
            "service.version": self.settings.service_version,
            "deployment.environment": self.settings.environment,
            **self.settings.resource_attributes
        })

        tracer_provider = TracerProvider(
            resource=self._resource,
            sampler=TraceIdRatioBased(self.settings.trace_sampling_ratio)
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(
            OTLPSpanExporter(endpoint=self.settings.otlp_endpoint, timeout=self.settings.export_timeout)
        ))
        trace.set_tracer_provider(tracer_provider)

        metric_reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=self.settings.otlp_endpoint, timeout=self.settings.export_timeout),
            export_interval_millis=10000
        )
        metrics.set_meter_provider(MeterProvider(resource=self._resource, metric_readers=[metric_reader]))

        AsyncioInstrumentor().instrument()
        LoggingInstrumentor().instrument(set_logging_format=False)

        self._initialized = True
        logger.info(f"OpenTelemetry initialized for service: {self.settings.service_name}")

    def shutdown(self) -> None:
        """Gracefully shutdown telemetry and flush pending data."""
        if not self._initialized:
            return

        try:
            if hasattr(trace.get_tracer_provider(), 'shutdown'):
                trace.get_tracer_provider().shutdown()
            if hasattr(metrics.get_meter_provider(), 'shutdown'):
                metrics.get_meter_provider().shutdown()
            logger.info("OpenTelemetry shutdown completed")
        except Exception as e:
            logger.error(f"Error during telemetry shutdown: {e}")
        finally:
            self._initialized = False


# Global telemetry manager instance
_telemetry_manager: Optional[TelemetryManager] = None


def initialize_telemetry(config: Dict[str, Any]) -> TelemetryManager:
    """Initialize global telemetry manager."""
    global _telemetry_manager
    _telemetry_manager = TelemetryManager(TelemetrySettings(config))
    _telemetry_manager.initialize()
    return _telemetry_manager


def shutdown_telemetry() -> None:
    """Shutdown global telemetry manager."""
    global _telemetry_manager
    if _telemetry_manager:
        _telemetry_manager.shutdown()
        _telemetry_manager = None


def get_tracer() -> trace.Tracer:
    """Get the bridge tracer from the current global provider."""
    return trace.get_tracer(INSTRUMENTATION_NAME)


def get_meter() -> metrics.Meter:
    """Get the bridge meter from the current global provider."""
    return metrics.get_meter(INSTRUMENTATION_NAME)


def create_turn_span(session_id: str, adapter_id: str) -> trace.Span:
    """Create a span for one bridge turn."""
    return get_tracer().start_span(
        name="bridge.turn",
        attributes={
            "bridge.session_id": session_id,
            "bridge.adapter_id": adapter_id
        }
    )


def create_tool_span(adapter_id: str, tool: str, action: str, session_id: Optional[str] = None) -> trace.Span:
    """Create a span for a tool dispatcher invocation."""
    attributes = {
        "bridge.adapter_id": adapter_id,
        "tool.name": tool,
        "tool.action": action
    }

    if session_id:
        attributes["bridge.session_id"] = session_id

    return get_tracer().start_span(name="bridge.tool", attributes=attributes)
