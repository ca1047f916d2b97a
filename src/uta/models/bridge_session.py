"""BridgeSession model."""

from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from uta.services.event_channel import SessionEventChannel


class BridgeSession(BaseModel):
    """Addressable conversation state for one frontend conversation.

    ``metadata`` holds one independent history list per adapter kind, so
    switching adapters never disturbs another adapter's context.
    """

    id: str = Field(default_factory=lambda: str(uuid4()), description="Opaque session handle")
    token: str = Field(default_factory=lambda: str(uuid4()), description="Capability secret")
    user_id: str = Field(..., min_length=1, description="Owning user")
    adapter: str = Field(..., description="Active runtime mode")
    conversation_id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_active: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    _events: SessionEventChannel = PrivateAttr(default_factory=SessionEventChannel)

    @property
    def events(self) -> SessionEventChannel:
        """Event delivery channel for this session."""
        return self._events

    def touch(self) -> None:
        """Advance ``last_active`` to now."""
        self.last_active = datetime.now(timezone.utc)

    def idle_seconds(self) -> float:
        """Seconds since the last successful touch."""
        return (datetime.now(timezone.utc) - self.last_active).total_seconds()

    def get_summary(self) -> Dict[str, Any]:
        """Operational summary without the token or history."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "adapter": self.adapter,
            "conversation_id": self.conversation_id,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
            "listeners": self._events.listener_count
        }
