"""Adapter contract models: status, messages, results and per-turn intents."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from uta.models.bridge_event import BridgeEvent


class AdapterStatus(BaseModel):
    """Availability report used for health and fallback decisions."""

    id: str = Field(..., description="Runtime mode identifier")
    available: bool = Field(..., description="Whether the adapter can take turns")
    detail: str = Field(..., description="Human-readable status detail")


class AdapterMessage(BaseModel):
    """Inbound user message for one turn."""

    content: str = Field(..., min_length=1)
    voice_hint: Optional[str] = None


class AdapterResult(BaseModel):
    """Authoritative terminal result of a turn."""

    events: List[BridgeEvent] = Field(default_factory=list)


class RoutedIntent(BaseModel):
    """A single resolved tool invocation. Never persisted past its turn."""

    tool: str
    action: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    def as_payload(self) -> Dict[str, Any]:
        """Intent fields carried on terminal message events."""
        return {"tool": self.tool, "action": self.action, "parameters": self.parameters}


class PlanDecision(BaseModel):
    """Self-hosted planner output: call a tool or answer directly."""

    decision: Literal["tool", "final"]
    tool: Optional[str] = None
    action: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    final_message: Optional[str] = None
    reason: Optional[str] = None

    @property
    def wants_tool(self) -> bool:
        """True when the plan names a complete tool call."""
        return self.decision == "tool" and bool(self.tool) and bool(self.action)


class AdapterInvocation(BaseModel):
    """Outcome of one top-level adapter call."""

    adapter_id: str
    duration_ms: int = Field(..., ge=0)
    success: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None


class AdapterTotals(BaseModel):
    """Running totals for one adapter."""

    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: int = 0
    average_ms: int = 0


class TelemetrySnapshot(BaseModel):
    """Point-in-time view of adapter telemetry."""

    totals: Dict[str, AdapterTotals] = Field(default_factory=dict)
    recent: List[AdapterInvocation] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
