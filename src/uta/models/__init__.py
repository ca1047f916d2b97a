"""Data models for the UTA bridge."""

from .bridge_event import BridgeEvent, EventMessage, EventPayload, EventType, MessageRole
from .adapter_models import (
    AdapterInvocation,
    AdapterMessage,
    AdapterResult,
    AdapterStatus,
    AdapterTotals,
    PlanDecision,
    RoutedIntent,
    TelemetrySnapshot,
)
from .bridge_session import BridgeSession

__all__ = [
    "AdapterInvocation",
    "AdapterMessage",
    "AdapterResult",
    "AdapterStatus",
    "AdapterTotals",
    "BridgeEvent",
    "BridgeSession",
    "EventMessage",
    "EventPayload",
    "EventType",
    "MessageRole",
    "PlanDecision",
    "RoutedIntent",
    "TelemetrySnapshot",
]
