"""Adapter telemetry: running totals plus a bounded recent-activity buffer."""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Optional

from uta.lib.metrics import AdapterCallMetrics, MetricsCollector
from uta.models.adapter_models import AdapterInvocation, AdapterTotals, TelemetrySnapshot


logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 50


class _RunningTotals:
    __slots__ = ("success_count", "failure_count", "total_duration_ms")

    def __init__(self):
        self.success_count = 0
        self.failure_count = 0
        self.total_duration_ms = 0


class AdapterTelemetry:
    """Passive observer of adapter invocations.

    Recording never raises into the turn path; averages are derived on read
    from the totals.
    """

    def __init__(
        self,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self._recent: Deque[AdapterInvocation] = deque(maxlen=recent_limit)
        self._totals: Dict[str, _RunningTotals] = {}
        self._last_updated: Optional[datetime] = None
        self._metrics = metrics_collector

    def record_invocation(self, invocation: AdapterInvocation) -> None:
        """Append to the recent buffer and fold into the adapter's totals."""
        try:
            self._recent.append(invocation)

            totals = self._totals.setdefault(invocation.adapter_id, _RunningTotals())
            if invocation.success:
                totals.success_count += 1
            else:
                totals.failure_count += 1
            totals.total_duration_ms += invocation.duration_ms

            self._last_updated = datetime.now(timezone.utc)

            if self._metrics is not None:
                self._metrics.record_adapter_call(AdapterCallMetrics(
                    adapter_id=invocation.adapter_id,
                    duration_ms=invocation.duration_ms,
                    success=invocation.success,
                    error_type=invocation.error
                ))
        except Exception:
            logger.exception("Failed to record adapter invocation")

    def snapshot(self) -> TelemetrySnapshot:
        """Totals with per-adapter averages, recent invocations oldest first."""
        totals = {}
        for adapter_id, running in self._totals.items():
            count = running.success_count + running.failure_count
            totals[adapter_id] = AdapterTotals(
                success_count=running.success_count,
                failure_count=running.failure_count,
                total_duration_ms=running.total_duration_ms,
                average_ms=round(running.total_duration_ms / count) if count else 0
            )

        return TelemetrySnapshot(
            totals=totals,
            recent=list(self._recent),
            last_updated=self._last_updated
        )

    def reset(self) -> None:
        """Clear all recorded telemetry."""
        self._recent.clear()
        self._totals.clear()
        self._last_updated = None
