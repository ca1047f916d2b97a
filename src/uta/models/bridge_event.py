"""BridgeEvent model: the canonical event shape emitted by every adapter."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class EventType(str, Enum):
    """Bridge event types."""

    MESSAGE = "message"
    STATUS = "status"
    TOOL_RESULT = "tool_result"


class MessageRole(str, Enum):
    """Roles for message events."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class EventMessage(BaseModel):
    """Conversational content carried by a ``message`` event."""

    role: MessageRole = Field(..., description="Speaker of the message")
    content: str = Field(..., description="Display text")
    voice_hint: Optional[str] = Field(None, description="Short spoken-ready summary")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class EventPayload(BaseModel):
    """Structured payload for status and tool_result events.

    Stream fragments carry ``delta``; tool notices carry ``tool``/``action``
    and ``data``; turn failures carry ``level``/``message``.
    """

    tool: Optional[str] = None
    action: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    data: Optional[Any] = None
    delta: Optional[str] = None
    level: Optional[str] = None
    message: Optional[str] = None


class BridgeEvent(BaseModel):
    """A single event delivered on a session's event channel."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Event identifier")
    type: EventType = Field(..., description="Event type")
    message: Optional[EventMessage] = Field(None, description="Message content for message events")
    payload: Optional[EventPayload] = Field(None, description="Structured payload")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @model_validator(mode='after')
    def validate_shape(self):
        """Message events need a message; other events need a payload."""
        if self.type == EventType.MESSAGE.value and self.message is None:
            raise ValueError("message events require a message")
        if self.type != EventType.MESSAGE.value and self.payload is None:
            raise ValueError(f"{self.type} events require a payload")
        return self

    @property
    def is_stream_delta(self) -> bool:
        """True for streamed partial-text events."""
        return self.payload is not None and self.payload.delta is not None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for transports, dropping empty fields."""
        return self.model_dump(mode="json", exclude_none=True)
